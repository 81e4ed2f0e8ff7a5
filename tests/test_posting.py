"""
tests/test_posting.py
"""
from __future__ import annotations

from notetimes.app import MARKER


def _post(client, content, **extra):
    return client.post("/api/notes", json={"content": content, **extra})


# ───────────────────────── create ──────────────────────────────────
def test_server_substitutes_variables_and_tags(client):
    rv = _post(client, "Met /user at /company #work #meeting #work")
    assert rv.status_code == 200
    note = rv.get_json()

    assert note["content"] == "Met John Doe at Acme Inc #work #meeting #work"
    assert note["originalContent"] == "Met /user at /company #work #meeting #work"
    assert note["tags"] == ["work", "meeting"]
    assert note["folder"] == "General"
    assert note["createdAt"].startswith("2099-")


def test_resolved_markers_collapse_to_value(client):
    note = _post(client, f"Call {MARKER}Tech Corp{MARKER} today").get_json()
    assert note["content"] == "Call Tech Corp today"
    assert MARKER in note["originalContent"]


def test_client_composed_note_is_stored_verbatim(client):
    note = _post(
        client,
        "already resolved",
        originalContent="already /user",
        tags=["x", "x", "y"],
        folder="  Work ",
    ).get_json()
    assert note["content"] == "already resolved"
    assert note["originalContent"] == "already /user"
    assert note["tags"] == ["x", "y"]
    assert note["folder"] == "Work"


def test_attachments_are_appended(client):
    note = _post(
        client,
        "",
        attachments=[
            {"name": "cat.png", "type": "image/png"},
            {"name": "report.pdf", "type": "application/pdf"},
        ],
    ).get_json()
    assert note["content"] == "\U0001f4f7 cat.png\n\U0001f4ce report.pdf"


def test_empty_note_rejected(client):
    rv = _post(client, "   ")
    assert rv.status_code == 400
    assert rv.get_json()["message"] == "Invalid note data"


def test_bad_payload_lists_errors(client):
    rv = client.post("/api/notes", json={"content": 3, "tags": "nope"})
    assert rv.status_code == 400
    errors = rv.get_json()["errors"]
    assert any(e.startswith("content") for e in errors)
    assert any(e.startswith("tags") for e in errors)


# ───────────────────────── list / filter / sort ────────────────────
def test_list_is_newest_first(client):
    first = _post(client, "first").get_json()
    second = _post(client, "second").get_json()
    ids = [n["id"] for n in client.get("/api/notes").get_json()]
    assert ids == [second["id"], first["id"]]

    ids = [n["id"] for n in client.get("/api/notes?sort=oldest").get_json()]
    assert ids == [first["id"], second["id"]]


def test_sort_by_mentions(client):
    none = _post(client, "plain").get_json()
    two = _post(client, "/user and /user again").get_json()
    one = _post(client, "/project only, /nobody").get_json()

    ids = [n["id"] for n in client.get("/api/notes?sort=mentions").get_json()]
    assert ids == [two["id"], one["id"], none["id"]]


def test_unknown_sort_rejected(client):
    assert client.get("/api/notes?sort=random").status_code == 400


def test_filter_by_tag_and_folder(client):
    _post(client, "a #red", folder="Colors")
    _post(client, "b #blue", folder="Colors")
    _post(client, "c #red")

    red = client.get("/api/notes?tag=red").get_json()
    assert sorted(n["originalContent"] for n in red) == ["a #red", "c #red"]

    both = client.get("/api/notes?tag=red&folder=Colors").get_json()
    assert [n["originalContent"] for n in both] == ["a #red"]

    colors = client.get("/api/notes/folder/Colors").get_json()
    assert [n["originalContent"] for n in colors] == ["b #blue", "a #red"]


def test_tag_counts(client):
    _post(client, "#a #b")
    _post(client, "#b")
    tags = client.get("/api/tags").get_json()
    assert tags == [{"name": "b", "count": 2}, {"name": "a", "count": 1}]


# ───────────────────────── delete ──────────────────────────────────
def test_delete_one(client):
    note = _post(client, "bye").get_json()
    rv = client.delete(f"/api/notes/{note['id']}")
    assert rv.status_code == 200
    assert client.get("/api/notes").get_json() == []

    assert client.delete(f"/api/notes/{note['id']}").status_code == 404


def test_delete_all(client):
    _post(client, "one")
    _post(client, "two")
    rv = client.delete("/api/notes")
    assert rv.get_json() == {"message": "All notes deleted"}
    assert client.get("/api/notes").get_json() == []
