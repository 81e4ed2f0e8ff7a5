"""
tests/test_ui.py
"""
import re

from notetimes.app import MARKER


def _note_ids(html: bytes) -> list[str]:
    return re.findall(r'id="note-([0-9a-f-]+)"', html.decode())


def test_index_empty_state(client):
    rv = client.get("/")
    assert rv.status_code == 200
    assert b"No notes yet" in rv.data
    assert b'id="composer"' in rv.data


def test_post_note_via_form(client, csrf):
    rv = client.post(
        "/",
        data={"csrf": csrf, "content": "Lunch with /user #food", "folder": "General"},
    )
    assert rv.status_code == 302

    note = client.get("/api/notes").get_json()[0]
    assert note["content"] == "Lunch with John Doe #food"
    assert note["tags"] == ["food"]

    page = client.get("/").data
    assert b'<span class="var-ref" title="Variable: user">/user</span>' in page
    assert b"#food" in page                          # sidebar tag link
    assert b"January 1, 2099" in page                # day separator


def test_form_can_create_folder(client, csrf):
    client.post(
        "/",
        data={"csrf": csrf, "content": "filed", "folder": "General", "new_folder": "Ideas"},
    )
    assert client.get("/api/notes").get_json()[0]["folder"] == "Ideas"
    assert b"Ideas" in client.get("/?folder=Ideas").data


def test_form_rejects_empty_note(client, csrf):
    rv = client.post("/", data={"csrf": csrf, "content": "  ", "folder": "General"})
    assert rv.status_code == 200
    assert b"Text is required." in rv.data
    assert client.get("/api/notes").get_json() == []


def test_form_requires_csrf(client):
    rv = client.post("/", data={"content": "sneaky"})
    assert rv.status_code == 403


def test_resolved_value_is_highlighted(client):
    client.post("/api/notes", json={"content": f"Ping {MARKER}Tech Corp{MARKER}"})
    page = client.get("/").data.decode()
    assert '<span class="var-value" title="Resolved variable value: Tech Corp">Tech Corp</span>' in page
    assert MARKER not in page


def test_tag_and_sort_filters(client):
    client.post("/api/notes", json={"content": "one #keep"})
    client.post("/api/notes", json={"content": "two"})
    client.post("/api/notes", json={"content": "three #keep"})

    page = client.get("/?tag=keep").data
    assert len(_note_ids(page)) == 2
    assert b"(2 notes)" in page

    newest = _note_ids(client.get("/").data)
    oldest = _note_ids(client.get("/?sort=oldest").data)
    assert oldest == list(reversed(newest))


def test_delete_via_form(client, csrf):
    note = client.post("/api/notes", json={"content": "bye"}).get_json()
    rv = client.post(f"/notes/{note['id']}/delete", data={"csrf": csrf})
    assert rv.status_code == 302
    assert client.get("/api/notes").get_json() == []

    rv = client.post(f"/notes/{note['id']}/delete", data={"csrf": csrf})
    assert rv.status_code == 404


def test_robots(client):
    rv = client.get("/robots.txt")
    assert rv.mimetype == "text/plain"
    assert b"Disallow: /" in rv.data
    assert "X-Session-Id" not in rv.headers
