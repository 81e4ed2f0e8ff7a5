import pytest

from notetimes.app import (
    MARKER,
    attachment_ref,
    autocomplete,
    clamp_font_size,
    count_variable_mentions,
    export_filename,
    extract_tags,
    find_variable_spans,
    has_variable_content,
    highlight_html,
    insert_option,
    parse_segments,
    parse_ts,
    parse_variable_lines,
    process_content,
    sort_notes,
)

VARS = [
    {"id": "1", "name": "user", "values": ["John Doe", "Jane Smith"]},
    {"id": "2", "name": "company", "values": ["Acme Inc"]},
    {"id": "3", "name": "empty", "values": []},
]


# ──────────────────────────────────────────────────────────────
# substitution
# ──────────────────────────────────────────────────────────────
def test_process_content_uses_first_value():
    content, original = process_content("Hi /user from /company", VARS)
    assert content == "Hi John Doe from Acme Inc"
    assert original == "Hi /user from /company"

def test_process_content_falls_back_to_name():
    assert process_content("/empty!", VARS)[0] == "empty!"

def test_process_content_respects_word_boundary():
    # /username is not /user
    assert process_content("/username", VARS)[0] == "/username"

def test_process_content_unwraps_markers():
    raw = f"Ask {MARKER}Jane Smith{MARKER} about /unknown"
    assert process_content(raw, VARS)[0] == "Ask Jane Smith about /unknown"

def test_replacement_is_literal():
    tricky = [{"name": "path", "values": [r"C:\new\1"]}]
    assert process_content("/path", tricky)[0] == r"C:\new\1"

@pytest.mark.parametrize("text,expected", [
    ("", False),
    ("no refs here", False),
    ("a /word", True),
    (f"a {MARKER}v{MARKER}", True),
])
def test_has_variable_content(text, expected):
    assert has_variable_content(text) is expected


# ──────────────────────────────────────────────────────────────
# spans & highlighting
# ──────────────────────────────────────────────────────────────
def test_spans_known_only():
    spans = find_variable_spans("/user met /nobody", VARS)
    assert [(s["type"], s["text"]) for s in spans] == [("variable", "/user")]

def test_spans_any_word_in_preview_mode():
    spans = find_variable_spans("/user met /nobody", VARS, known_only=False)
    assert [s["name"] for s in spans] == ["user", "nobody"]

def test_overlapping_span_dropped():
    text = f"{MARKER}/user{MARKER} and /user"
    spans = find_variable_spans(text, VARS)
    assert [s["type"] for s in spans] == ["resolved_value", "variable"]
    assert spans[0]["value"] == "/user"
    assert spans[1]["start"] == len(f"{MARKER}/user{MARKER} and ")

def test_parse_segments():
    segs = parse_segments("Hi /user!", VARS)
    assert segs == [
        {"type": "text", "content": "Hi "},
        {"type": "variable", "content": "/user", "name": "user"},
        {"type": "text", "content": "!"},
    ]
    assert parse_segments("plain", VARS) == [{"type": "text", "content": "plain"}]

def test_highlight_html_escapes_and_wraps():
    html = str(highlight_html(f"<b>/user</b> {MARKER}Acme Inc{MARKER}", VARS))
    assert html.startswith("&lt;b&gt;")
    assert '<span class="var-ref" title="Variable: user">/user</span>' in html
    assert '<span class="var-value" title="Resolved variable value: Acme Inc">Acme Inc</span>' in html
    assert MARKER not in html

def test_count_mentions():
    assert count_variable_mentions("/user and /user, /company, /nobody", VARS) == 3
    assert count_variable_mentions("", VARS) == 0
    assert count_variable_mentions(None, VARS) == 0


# ──────────────────────────────────────────────────────────────
# autocomplete
# ──────────────────────────────────────────────────────────────
def test_autocomplete_matches_names_and_values():
    slash, options = autocomplete("Hi /ja", 6, VARS)
    assert slash == 3
    assert [(o["type"], o["matchedText"]) for o in options] == [("value", "Jane Smith")]
    assert options[0]["name"] == "user"

def test_autocomplete_ranking():
    variables = [{"name": "alpha", "values": ["banana", "a"]}]
    _, options = autocomplete("/a", 2, variables)
    assert [o["matchedText"] for o in options] == ["a", "alpha", "banana"]

def test_autocomplete_bare_slash_lists_everything():
    _, options = autocomplete("/", 1, VARS)
    names = {o["matchedText"] for o in options if o["type"] == "variable"}
    assert names == {"user", "company", "empty"}

@pytest.mark.parametrize("text", ["no slash", "/us er", "/us\ter"])
def test_autocomplete_no_options(text):
    assert autocomplete(text, len(text), VARS) == (None, [])

def test_autocomplete_uses_cursor_not_end():
    slash, options = autocomplete("/comp and more", 5, VARS)
    assert slash == 0
    assert options[0]["name"] == "company"

def test_insert_variable_option():
    text, cursor = insert_option("Hi /us!", 3, 6, {"type": "variable", "name": "user"})
    assert text == "Hi /user!"
    assert cursor == 8

def test_insert_value_option():
    text, cursor = insert_option(
        "Hi /jo!", 3, 6, {"type": "value", "name": "user", "value": "John Doe"}
    )
    assert text == f"Hi {MARKER}John Doe{MARKER}!"
    assert cursor == 13

@pytest.mark.parametrize("slash,cursor,option", [
    (5, 3, {"type": "variable", "name": "user"}),
    (0, 99, {"type": "variable", "name": "user"}),
    (0, 1, {"type": "mystery"}),
    (0, 1, {"type": "value"}),
])
def test_insert_option_rejects_bad_input(slash, cursor, option):
    with pytest.raises(ValueError):
        insert_option("/user", slash, cursor, option)


# ──────────────────────────────────────────────────────────────
# tags, attachments, import lines
# ──────────────────────────────────────────────────────────────
def test_extract_tags_keeps_order_and_dedupes():
    assert extract_tags("#b then #a and #b again #a_1") == ["b", "a", "a_1"]
    assert extract_tags(None) == []

def test_attachment_ref():
    assert attachment_ref("cat.jpg", "image/jpeg") == "\U0001f4f7 cat.jpg"
    assert attachment_ref("notes.zip", "application/zip") == "\U0001f4ce notes.zip"
    assert attachment_ref("mystery", None) == "\U0001f4ce mystery"

def test_parse_variable_lines():
    text = "user=Jane\n  /city: Oslo  \nteam,Blue Team\nnot a pair\n\nk=v=w"
    assert parse_variable_lines(text) == [
        ("user", "Jane"),
        ("city", "Oslo"),
        ("team", "Blue Team"),
        ("k", "v=w"),
    ]


# ──────────────────────────────────────────────────────────────
# misc
# ──────────────────────────────────────────────────────────────
def test_sort_by_mentions_is_stable():
    notes = [
        {"id": "a", "createdAt": "3", "originalContent": "/user"},
        {"id": "b", "createdAt": "2", "originalContent": "none"},
        {"id": "c", "createdAt": "1", "originalContent": "/company"},
    ]
    assert [n["id"] for n in sort_notes(notes, "mentions", VARS)] == ["a", "c", "b"]
    with pytest.raises(ValueError):
        sort_notes(notes, "random", VARS)

@pytest.mark.parametrize("raw,size", [(3, 12), (99, 24), ("18", 18), ("x", 14), (None, 14)])
def test_clamp_font_size(raw, size):
    assert clamp_font_size(raw) == size

def test_export_filename():
    import datetime as dt
    now = dt.datetime(2024, 3, 5, tzinfo=dt.timezone.utc)
    assert export_filename(None, "md", now=now) == "all-notes-2024-03-05.md"
    assert export_filename("Work", "html", now=now) == "Work-notes-2024-03-05.html"

def test_parse_ts_accepts_javascript_utc_suffix():
    import datetime as dt
    got = parse_ts("2024-03-05T10:15:30.000Z")
    assert got == dt.datetime(2024, 3, 5, 10, 15, 30, tzinfo=dt.timezone.utc)
    assert parse_ts("2024-03-05T10:15:30").tzinfo == dt.timezone.utc
