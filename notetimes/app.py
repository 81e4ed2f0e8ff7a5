#!/usr/bin/env python3
"""
A single-file note-taking service with anonymous sessions.

Notes are timestamped, filed into folders and tagged with ``#words``.
Variables are named lists of values that can be dropped into a note with
``/name``; a picked value is stored between zero-width spaces so it can be
highlighted later without changing what the reader sees.
"""

import json
import os
import re
import secrets
import sqlite3
import uuid
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from functools import wraps
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from time import time
from typing import DefaultDict
from zoneinfo import ZoneInfo, available_timezones

import click
from flask import (
    Flask,
    Response,
    abort,
    flash,
    g,
    redirect,
    render_template_string,
    request,
    session,
    url_for,
)
from itsdangerous import BadSignature, Signer
from markupsafe import Markup, escape
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.utils import secure_filename

################################################################################
# Imports & constants
################################################################################

ROOT = Path(__file__).parent
DB_FILE = Path(os.environ.get("NOTETIMES_DB", str(ROOT / "notes.sqlite3")))

SECRET_FILE = ROOT / ".secret_key"
SECRET_KEY = os.environ.get("NOTETIMES_SECRET_KEY") or (
    SECRET_FILE.read_text().strip() if SECRET_FILE.exists() else secrets.token_hex(32)
)
if "NOTETIMES_SECRET_KEY" not in os.environ and not SECRET_FILE.exists():
    SECRET_FILE.write_text(SECRET_KEY)

ENV_NAME = os.environ.get("NOTETIMES_ENV", "development")
IS_PRODUCTION = ENV_NAME == "production"
TZ_DFLT = os.environ.get("NOTETIMES_TZ", "UTC")
SESSION_IDLE_DAYS = int(os.environ.get("NOTETIMES_SESSION_DAYS", "365"))

SESSION_COOKIE = "sessionId"
SESSION_HEADER = "X-Session-Id"
SESSION_ID_LEN = 21
SESSION_ID_ALPHABET = (
    "useandom-26T198340PX75pxJACKVERYMINDBUSHWOLF_GQZbfghjklqvwyzrict"
)
SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
SESSION_MAX_AGE = 365 * 24 * 60 * 60  # one year

DEFAULT_FOLDER = "General"
FOLDER_MAX_LEN = 100
VARIABLE_NAME_MAX_LEN = 64
VARIABLE_NAME_RE = re.compile(r"^\w(?:[\w-]*\w)?$")
DEFAULT_VARIABLES = (
    ("user", ["John Doe", "Jane Smith", "Bob Wilson"]),
    ("company", ["Acme Inc", "Tech Corp", "Innovation Labs"]),
    ("project", ["Alpha", "Beta", "Gamma"]),
)

FONT_SIZE_MIN, FONT_SIZE_MAX, FONT_SIZE_DEFAULT = 12, 24, 14
SORT_OPTIONS = ("newest", "oldest", "mentions")
EXPORT_FORMATS = ("text", "json", "html", "markdown")

# U+200B brackets a value picked from a variable: "\u200bAcme Inc\u200b"
MARKER = "\u200b"
RESOLVED_RE = re.compile(f"{MARKER}([^{MARKER}]+){MARKER}")
ANY_REF_RE = re.compile(r"/\w+")
VARIABLE_CONTENT_RE = re.compile(rf"/\w+|{MARKER}[^{MARKER}]+{MARKER}")
TAG_RE = re.compile(r"#(\w+)")
IMPORT_LINE_RE = re.compile(r"^/?([\w-]+)[:=,]\s*(.+)$")
IMAGE_REF_ICON = "\U0001f4f7"  # camera
FILE_REF_ICON = "\U0001f4ce"  # paperclip

# scanned once, walking the tz database is slow
TIMEZONES = frozenset(available_timezones())

try:
    __version__ = version("notetimes")
except PackageNotFoundError:
    __version__ = "0.1.0-dev"


################################################################################
# App
################################################################################
app = Flask(__name__)
app.url_map.strict_slashes = False
app.config.update(SECRET_KEY=SECRET_KEY, DATABASE=str(DB_FILE))
app.config.update(
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SECURE=IS_PRODUCTION,
    NOTE_SESSION_COOKIE_SECURE=IS_PRODUCTION,
    TIMEZONE=TZ_DFLT,
    SESSION_IDLE_DAYS=SESSION_IDLE_DAYS,
    RATE_LIMIT_ENABLED=True,
)
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

signer = Signer(SECRET_KEY, salt="session-id")


###############################################################################
# Database helpers
###############################################################################
def get_db():
    if "db" not in g:
        g.db = sqlite3.connect(app.config["DATABASE"])
        g.db.execute("PRAGMA foreign_keys = ON;")
        g.db.row_factory = sqlite3.Row
    return g.db


@app.teardown_appcontext
def close_db(error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    db.executescript(
        """
        ------------------------------------------------------------
        -- 1.  Anonymous sessions
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS user_session (
            id              TEXT PRIMARY KEY,
            session_id      TEXT UNIQUE NOT NULL,
            created_at      TEXT NOT NULL,
            last_active_at  TEXT NOT NULL
        );

        ------------------------------------------------------------
        -- 2.  Notes
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS note (
            id                TEXT PRIMARY KEY,
            session_id        TEXT NOT NULL,
            content           TEXT NOT NULL,      -- after substitution
            original_content  TEXT NOT NULL,      -- as typed
            folder            TEXT NOT NULL DEFAULT 'General',
            created_at        TEXT NOT NULL,
            FOREIGN KEY (session_id) REFERENCES user_session(session_id)
                ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS idx_note_session ON note(session_id, created_at);

        CREATE TABLE IF NOT EXISTS note_tag (
            note_id  TEXT NOT NULL,
            tag      TEXT NOT NULL,
            ord      INTEGER NOT NULL,
            PRIMARY KEY (note_id, tag),
            FOREIGN KEY (note_id) REFERENCES note(id) ON DELETE CASCADE
        );

        ------------------------------------------------------------
        -- 3.  Folders created before any note lives in them
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS folder (
            session_id  TEXT NOT NULL,
            name        TEXT NOT NULL,
            created_at  TEXT NOT NULL,
            PRIMARY KEY (session_id, name),
            FOREIGN KEY (session_id) REFERENCES user_session(session_id)
                ON DELETE CASCADE
        );

        ------------------------------------------------------------
        -- 4.  Variables (one row per name, values kept in order)
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS variable (
            id          TEXT PRIMARY KEY,
            session_id  TEXT NOT NULL,
            name        TEXT NOT NULL,
            created_at  TEXT NOT NULL,
            UNIQUE (session_id, name),
            FOREIGN KEY (session_id) REFERENCES user_session(session_id)
                ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS variable_value (
            variable_id  TEXT NOT NULL,
            ord          INTEGER NOT NULL,
            value        TEXT NOT NULL,
            PRIMARY KEY (variable_id, ord),
            FOREIGN KEY (variable_id) REFERENCES variable(id) ON DELETE CASCADE
        );

        ------------------------------------------------------------
        -- 5.  Per-session preferences
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS settings (
            session_id  TEXT NOT NULL,
            key         TEXT NOT NULL,
            value       TEXT,
            PRIMARY KEY (session_id, key),
            FOREIGN KEY (session_id) REFERENCES user_session(session_id)
                ON DELETE CASCADE
        );
        """
    )
    db.commit()


# -------------------------------------------------------------------------
# Time helpers
# -------------------------------------------------------------------------
def utc_now() -> datetime:
    """Return an *aware* datetime in UTC."""
    return datetime.now(timezone.utc)


def parse_ts(iso: str) -> datetime:
    if iso.endswith("Z"):  # JavaScript toISOString()
        iso = iso[:-1] + "+00:00"
    dt = datetime.fromisoformat(iso)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def local_dt(iso: str, tz: str) -> datetime:
    return parse_ts(iso).astimezone(ZoneInfo(tz))


def fmt_clock(dt: datetime) -> str:
    """09:05 AM"""
    return dt.strftime("%I:%M %p")


def fmt_long(dt: datetime) -> str:
    """March 5, 2024 9:05 AM"""
    hour = dt.hour % 12 or 12
    return f"{dt:%B} {dt.day}, {dt.year} {hour}:{dt:%M} {dt:%p}"


def fmt_day(dt: datetime) -> str:
    """March 5, 2024"""
    return f"{dt:%B} {dt.day}, {dt.year}"


def fmt_short_day(dt: datetime) -> str:
    """Mar 5, 2024"""
    return f"{dt:%b} {dt.day}, {dt.year}"


###############################################################################
# Sessions
###############################################################################
def new_session_id() -> str:
    """21 URL-safe characters, same shape as a nanoid."""
    return "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(SESSION_ID_LEN))


def session_dict(row) -> dict:
    return {
        "id": row["id"],
        "sessionId": row["session_id"],
        "createdAt": row["created_at"],
        "lastActiveAt": row["last_active_at"],
    }


def get_session(sid: str, *, db):
    return db.execute(
        "SELECT * FROM user_session WHERE session_id=?", (sid,)
    ).fetchone()


def create_session(sid: str, *, db):
    """Insert the session row and seed the starter variables."""
    now = utc_now().isoformat()
    db.execute(
        """INSERT INTO user_session (id, session_id, created_at, last_active_at)
                  VALUES (?,?,?,?)""",
        (str(uuid.uuid4()), sid, now, now),
    )
    for name, values in DEFAULT_VARIABLES:
        save_variable(sid, name, values, db=db, commit=False)
    db.commit()
    app.logger.info("created session %s", sid)
    return get_session(sid, db=db)


def touch_session(sid: str, *, db) -> None:
    db.execute(
        "UPDATE user_session SET last_active_at=? WHERE session_id=?",
        (utc_now().isoformat(), sid),
    )
    db.commit()


def purge_sessions(days: int, *, db) -> int:
    """
    Drop sessions idle for more than *days*.
    Notes, folders, variables and settings go with them (ON DELETE CASCADE).
    """
    cutoff = (utc_now() - timedelta(days=days)).isoformat()
    cur = db.execute("DELETE FROM user_session WHERE last_active_at < ?", (cutoff,))
    db.commit()
    return cur.rowcount


def _requested_session_id() -> str | None:
    """Header first, then the signed cookie."""
    cookie_sid = None
    raw = request.cookies.get(SESSION_COOKIE, "")
    if raw:
        try:
            cookie_sid = signer.unsign(raw).decode()
        except BadSignature:
            app.logger.warning("ignoring tampered session cookie")

    header_sid = (request.headers.get(SESSION_HEADER) or "").strip()
    for sid in (header_sid, cookie_sid):
        if sid and SESSION_ID_RE.match(sid):
            return sid
    return None


SESSIONLESS_ENDPOINTS = {"static", "robots"}


@app.before_request
def resolve_session():
    g.session_id = None
    g.set_session_cookie = False
    if request.endpoint is None or request.endpoint in SESSIONLESS_ENDPOINTS:
        return

    db = get_db()
    sid = _requested_session_id()
    if not sid:
        sid = new_session_id()
        create_session(sid, db=db)
        g.set_session_cookie = True
    elif get_session(sid, db=db) is None:
        try:
            create_session(sid, db=db)
        except sqlite3.IntegrityError:
            # a concurrent request created it first
            db.rollback()
            touch_session(sid, db=db)
    else:
        touch_session(sid, db=db)

    g.session_id = sid


@app.after_request
def emit_session(resp):
    sid = g.get("session_id")
    if not sid:
        return resp
    resp.headers[SESSION_HEADER] = sid
    if g.get("set_session_cookie"):
        resp.set_cookie(
            SESSION_COOKIE,
            signer.sign(sid).decode(),
            max_age=SESSION_MAX_AGE,
            httponly=True,
            secure=app.config["NOTE_SESSION_COOKIE_SECURE"],
            samesite="Lax",
        )
    return resp


def current_sid() -> str:
    sid = g.get("session_id")
    if not sid:
        abort(400)
    return sid


# -------------------------------------------------------------------------
# Per-session settings
# -------------------------------------------------------------------------
def get_setting(key, default=None, *, sid=None):
    sid = sid or g.get("session_id")
    if not sid:
        return default
    row = get_db().execute(
        "SELECT value FROM settings WHERE session_id=? AND key=?", (sid, key)
    ).fetchone()
    return row["value"] if row else default


def set_setting(key, value, *, sid=None):
    sid = sid or current_sid()
    db = get_db()
    db.execute(
        "INSERT INTO settings (session_id, key, value) VALUES (?,?,?) "
        "ON CONFLICT(session_id, key) DO UPDATE SET value=excluded.value",
        (sid, key, value),
    )
    db.commit()


def tz_name(sid=None) -> str:
    fallback = app.config.get("TIMEZONE", TZ_DFLT)
    if fallback not in TIMEZONES:
        fallback = "UTC"
    tz = get_setting("timezone", fallback, sid=sid)
    return tz if tz in TIMEZONES else fallback


def clamp_font_size(value) -> int:
    try:
        size = int(value)
    except (TypeError, ValueError):
        return FONT_SIZE_DEFAULT
    return max(FONT_SIZE_MIN, min(FONT_SIZE_MAX, size))


def font_size(sid=None) -> int:
    return clamp_font_size(get_setting("font_size", FONT_SIZE_DEFAULT, sid=sid))


def settings_dict(sid=None) -> dict:
    return {"fontSize": font_size(sid), "timezone": tz_name(sid)}


###############################################################################
# Variable text processing
###############################################################################
def _ref_re(name: str) -> re.Pattern:
    return re.compile(rf"/{re.escape(name)}\b")


def process_content(raw: str, variables) -> tuple[str, str]:
    """
    Resolve a note as typed into the text that gets stored as ``content``.

    • ``MARKER value MARKER`` pairs collapse to the bare value
    • every ``/name`` becomes the variable's first value (or its name
      when it has none)

    Returns ``(content, raw)``.
    """
    content = RESOLVED_RE.sub(r"\1", raw)
    for var in variables:
        values = var.get("values") or []
        replacement = values[0] if values else var["name"]
        content = _ref_re(var["name"]).sub(lambda _m, r=replacement: r, content)
    return content, raw


def has_variable_content(text: str | None) -> bool:
    return bool(text) and bool(VARIABLE_CONTENT_RE.search(text))


def find_variable_spans(text: str, variables, *, known_only: bool = True) -> list[dict]:
    """
    Locate resolved values and ``/name`` references in *text*.

    With *known_only* a reference only counts when *name* is one of
    *variables*; otherwise any ``/word`` does (the composer preview).
    Spans come back ordered by position; a span that starts inside an
    earlier one is dropped.
    """
    if not text:
        return []

    spans: list[dict] = []
    for m in RESOLVED_RE.finditer(text):
        spans.append(
            {
                "start": m.start(),
                "end": m.end(),
                "type": "resolved_value",
                "text": m.group(0),
                "value": m.group(1),
            }
        )

    if known_only:
        for var in variables:
            for m in _ref_re(var["name"]).finditer(text):
                spans.append(
                    {
                        "start": m.start(),
                        "end": m.end(),
                        "type": "variable",
                        "text": m.group(0),
                        "name": var["name"],
                    }
                )
    else:
        for m in ANY_REF_RE.finditer(text):
            spans.append(
                {
                    "start": m.start(),
                    "end": m.end(),
                    "type": "variable",
                    "text": m.group(0),
                    "name": m.group(0)[1:],
                }
            )

    spans.sort(key=lambda s: (s["start"], -s["end"]))
    out, last = [], 0
    for s in spans:
        if s["start"] < last:
            continue
        out.append(s)
        last = s["end"]
    return out


def parse_segments(text: str, variables) -> list[dict]:
    """Split *text* into plain and ``/name`` segments."""
    segments: list[dict] = []
    last = 0
    for s in find_variable_spans(text, variables):
        if s["type"] != "variable":
            continue
        if s["start"] > last:
            segments.append({"type": "text", "content": text[last : s["start"]]})
        segments.append({"type": "variable", "content": s["text"], "name": s["name"]})
        last = s["end"]
    if last < len(text):
        segments.append({"type": "text", "content": text[last:]})
    return segments or [{"type": "text", "content": text}]


def highlight_html(text: str | None, variables, *, known_only: bool = True) -> Markup:
    """Escape *text* and wrap references / resolved values in spans."""
    text = text or ""
    parts: list = []
    last = 0
    for s in find_variable_spans(text, variables, known_only=known_only):
        parts.append(escape(text[last : s["start"]]))
        if s["type"] == "variable":
            parts.append(
                Markup('<span class="var-ref" title="Variable: {0}">/{0}</span>').format(
                    s["name"]
                )
            )
        else:
            parts.append(
                Markup(
                    '<span class="var-value" title="Resolved variable value: {0}">{0}</span>'
                ).format(s["value"])
            )
        last = s["end"]
    parts.append(escape(text[last:]))
    return Markup("").join(parts)


def count_variable_mentions(text: str | None, variables) -> int:
    if not text:
        return 0
    return sum(len(_ref_re(v["name"]).findall(text)) for v in variables)


def _relevance(matched: str, term: str) -> tuple[int, int, int]:
    low = matched.lower()
    return (low != term, not low.startswith(term), len(low))


def autocomplete(text: str, cursor: int, variables) -> tuple[int | None, list[dict]]:
    """
    Options for the ``/term`` that ends at *cursor*.

    Returns ``(slash_pos, options)``.  No slash before the cursor, or
    whitespace between it and the cursor, means ``(None, [])``.
    Options: exact matches first, then prefix matches, then shorter text.
    """
    cursor = max(0, min(cursor, len(text)))
    before = text[:cursor]
    slash = before.rfind("/")
    if slash == -1:
        return None, []
    term = before[slash + 1 :].lower()
    if any(ch.isspace() for ch in term):
        return None, []

    options: list[dict] = []
    for var in variables:
        values = var.get("values") or []
        if term in var["name"].lower():
            options.append(
                {
                    "type": "variable",
                    "variableId": var.get("id"),
                    "name": var["name"],
                    "value": None,
                    "matchedText": var["name"],
                    "valueCount": len(values),
                }
            )
        for value in values:
            if term in value.lower():
                options.append(
                    {
                        "type": "value",
                        "variableId": var.get("id"),
                        "name": var["name"],
                        "value": value,
                        "matchedText": value,
                        "valueCount": len(values),
                    }
                )
    options.sort(key=lambda o: _relevance(o["matchedText"], term))
    return slash, options


def insert_option(text: str, slash_pos: int, cursor: int, option: dict) -> tuple[str, int]:
    """
    Replace ``text[slash_pos:cursor]`` with the picked option.
    Returns the new text and the cursor position right after the insert.
    """
    if not 0 <= slash_pos <= cursor <= len(text):
        raise ValueError("slashPos/cursor out of range")
    if option.get("type") == "value":
        value = option.get("value")
        if not isinstance(value, str) or not value:
            raise ValueError("value option needs a value")
        snippet = f"{MARKER}{value}{MARKER}"
    elif option.get("type") == "variable":
        name = option.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError("variable option needs a name")
        snippet = f"/{name}"
    else:
        raise ValueError("option type must be 'variable' or 'value'")
    new_text = text[:slash_pos] + snippet + text[cursor:]
    return new_text, slash_pos + len(snippet)


def extract_tags(text: str | None) -> list[str]:
    """``#word`` tokens in order of appearance, without repeats."""
    if not text:
        return []
    return list(dict.fromkeys(TAG_RE.findall(text)))


def attachment_ref(name: str, mimetype: str | None = "") -> str:
    icon = IMAGE_REF_ICON if (mimetype or "").startswith("image/") else FILE_REF_ICON
    return f"{icon} {name}"


def compose_note(text: str, variables, attachments=()) -> dict:
    """Typed text (+ attachment names) → the fields stored for a note."""
    final = text
    refs = [attachment_ref(a["name"], a.get("type")) for a in attachments]
    if refs:
        block = "\n".join(refs)
        if block not in text:
            final = text + ("\n" if text else "") + block
    content, original = process_content(final, variables)
    return {
        "content": content,
        "originalContent": original,
        "tags": extract_tags(final),
    }


def parse_variable_lines(text: str | None) -> list[tuple[str, str]]:
    """
    ``name=value``, ``name:value``, ``name,value`` – one per line,
    optional leading slash.  Lines that don't fit are skipped.
    """
    pairs: list[tuple[str, str]] = []
    for line in (text or "").splitlines():
        m = IMPORT_LINE_RE.match(line.strip())
        if m:
            pairs.append((m.group(1).strip(), m.group(2).strip()))
    return pairs


###############################################################################
# Notes
###############################################################################
def note_dict(row, tags) -> dict:
    return {
        "id": row["id"],
        "sessionId": row["session_id"],
        "content": row["content"],
        "originalContent": row["original_content"],
        "tags": list(tags),
        "folder": row["folder"],
        "createdAt": row["created_at"],
    }


def _tags_for(note_ids, *, db) -> dict[str, list[str]]:
    out: dict[str, list[str]] = {nid: [] for nid in note_ids}
    if not out:
        return out
    q_marks = ",".join("?" * len(out))
    for r in db.execute(
        f"SELECT note_id, tag FROM note_tag WHERE note_id IN ({q_marks}) "
        "ORDER BY note_id, ord",
        tuple(out),
    ):
        out[r["note_id"]].append(r["tag"])
    return out


def list_notes(sid: str, *, db, folder: str | None = None, tag: str | None = None):
    """Newest first."""
    sql = "SELECT * FROM note WHERE session_id=?"
    params: list = [sid]
    if folder:
        sql += " AND folder=?"
        params.append(folder)
    if tag:
        sql += " AND EXISTS (SELECT 1 FROM note_tag t WHERE t.note_id=note.id AND t.tag=?)"
        params.append(tag)
    sql += " ORDER BY created_at DESC, rowid DESC"
    rows = db.execute(sql, params).fetchall()
    tags = _tags_for([r["id"] for r in rows], db=db)
    return [note_dict(r, tags[r["id"]]) for r in rows]


def create_note(
    sid: str,
    *,
    content: str,
    original_content: str,
    tags=(),
    folder: str | None = None,
    created_at: str | None = None,
    db,
    commit: bool = True,
) -> dict:
    note_id = str(uuid.uuid4())
    folder = (folder or "").strip() or DEFAULT_FOLDER
    created_at = created_at or utc_now().isoformat()
    db.execute(
        """INSERT INTO note (id, session_id, content, original_content, folder, created_at)
                  VALUES (?,?,?,?,?,?)""",
        (note_id, sid, content, original_content, folder, created_at),
    )
    clean_tags = list(dict.fromkeys(t for t in tags if t))
    for ord_, tag in enumerate(clean_tags):
        db.execute(
            "INSERT INTO note_tag (note_id, tag, ord) VALUES (?,?,?)",
            (note_id, tag, ord_),
        )
    if commit:
        db.commit()
    row = db.execute("SELECT * FROM note WHERE id=?", (note_id,)).fetchone()
    return note_dict(row, clean_tags)


def delete_note(sid: str, note_id: str, *, db) -> None:
    cur = db.execute("DELETE FROM note WHERE id=? AND session_id=?", (note_id, sid))
    db.commit()
    if cur.rowcount == 0:
        raise LookupError("Note not found or does not belong to this session")


def delete_all_notes(sid: str, *, db) -> int:
    cur = db.execute("DELETE FROM note WHERE session_id=?", (sid,))
    db.commit()
    return cur.rowcount


def sort_notes(notes: list[dict], order: str, variables) -> list[dict]:
    """*notes* arrive newest first; every sort is stable."""
    if order == "newest":
        return sorted(notes, key=lambda n: n["createdAt"], reverse=True)
    if order == "oldest":
        return sorted(notes, key=lambda n: n["createdAt"])
    if order == "mentions":
        return sorted(
            notes,
            key=lambda n: count_variable_mentions(n["originalContent"], variables),
            reverse=True,
        )
    raise ValueError(f"sort must be one of {', '.join(SORT_OPTIONS)}")


def tag_counts(notes) -> list[dict]:
    counts: dict[str, int] = {}
    for n in notes:
        for t in n["tags"]:
            counts[t] = counts.get(t, 0) + 1
    return [{"name": k, "count": v} for k, v in counts.items()]


def group_by_day(notes, *, tz: str) -> list[tuple[str, list[dict]]]:
    """[(YYYY-MM-DD, notes…)], most recent day first."""
    days: DefaultDict[str, list] = defaultdict(list)
    for n in notes:
        days[local_dt(n["createdAt"], tz).date().isoformat()].append(n)
    return sorted(days.items(), key=lambda kv: kv[0], reverse=True)


###############################################################################
# Folders
###############################################################################
def clean_folder_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Folder name is required and must be a string")
    name = name.strip()
    if len(name) > FOLDER_MAX_LEN:
        raise ValueError(f"Folder name must be at most {FOLDER_MAX_LEN} characters")
    return name


def list_folders(sid: str, *, db) -> list[str]:
    names = {DEFAULT_FOLDER}
    names.update(
        r["name"] for r in db.execute("SELECT name FROM folder WHERE session_id=?", (sid,))
    )
    names.update(
        r["folder"]
        for r in db.execute("SELECT DISTINCT folder FROM note WHERE session_id=?", (sid,))
    )
    return sorted(names)


def folder_counts(sid: str, *, db) -> dict[str, int]:
    counts = {name: 0 for name in list_folders(sid, db=db)}
    for r in db.execute(
        "SELECT folder, COUNT(*) AS n FROM note WHERE session_id=? GROUP BY folder", (sid,)
    ):
        counts[r["folder"]] = r["n"]
    return counts


def create_folder(sid: str, name, *, db) -> str:
    name = clean_folder_name(name)
    db.execute(
        "INSERT OR IGNORE INTO folder (session_id, name, created_at) VALUES (?,?,?)",
        (sid, name, utc_now().isoformat()),
    )
    db.commit()
    return name


def delete_folder(sid: str, name: str, *, db) -> None:
    if name == DEFAULT_FOLDER:
        raise ValueError(f'The "{DEFAULT_FOLDER}" folder cannot be deleted.')
    in_use = db.execute(
        "SELECT 1 FROM note WHERE session_id=? AND folder=? LIMIT 1", (sid, name)
    ).fetchone()
    if in_use:
        raise ValueError(
            "Cannot delete folder with notes. Please move or delete notes first."
        )
    db.execute("DELETE FROM folder WHERE session_id=? AND name=?", (sid, name))
    db.commit()


###############################################################################
# Variables
###############################################################################
class DuplicateName(ValueError):
    """The session already has a variable with that name."""


def clean_variable_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Variable name is required and must be a string")
    name = name.strip().lstrip("/")
    if len(name) > VARIABLE_NAME_MAX_LEN or not VARIABLE_NAME_RE.match(name):
        raise ValueError(
            "Variable names may only contain letters, digits, '_' and inner '-'"
        )
    return name


def clean_values(values) -> list[str]:
    if values is None:
        return []
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise ValueError("Values must be a list of strings")
    return [v.strip() for v in values if v.strip()]


def _values_for(var_ids, *, db) -> dict[str, list[str]]:
    out: dict[str, list[str]] = {vid: [] for vid in var_ids}
    if not out:
        return out
    q_marks = ",".join("?" * len(out))
    for r in db.execute(
        f"SELECT variable_id, value FROM variable_value WHERE variable_id IN ({q_marks}) "
        "ORDER BY variable_id, ord",
        tuple(out),
    ):
        out[r["variable_id"]].append(r["value"])
    return out


def _variable_dicts(rows, *, db) -> list[dict]:
    values = _values_for([r["id"] for r in rows], db=db)
    return [
        {
            "id": r["id"],
            "sessionId": r["session_id"],
            "name": r["name"],
            "values": values[r["id"]],
        }
        for r in rows
    ]


def list_variables(sid: str, *, db) -> list[dict]:
    rows = db.execute(
        "SELECT * FROM variable WHERE session_id=? ORDER BY created_at, rowid", (sid,)
    ).fetchall()
    return _variable_dicts(rows, db=db)


def get_variable(sid: str, var_id: str, *, db) -> dict | None:
    rows = db.execute(
        "SELECT * FROM variable WHERE session_id=? AND id=?", (sid, var_id)
    ).fetchall()
    found = _variable_dicts(rows, db=db)
    return found[0] if found else None


def find_variable(sid: str, name: str, *, db) -> dict | None:
    rows = db.execute(
        "SELECT * FROM variable WHERE session_id=? AND name=?", (sid, name)
    ).fetchall()
    found = _variable_dicts(rows, db=db)
    return found[0] if found else None


def _write_values(var_id: str, values: list[str], *, db) -> None:
    db.execute("DELETE FROM variable_value WHERE variable_id=?", (var_id,))
    db.executemany(
        "INSERT INTO variable_value (variable_id, ord, value) VALUES (?,?,?)",
        [(var_id, i, v) for i, v in enumerate(values)],
    )


def save_variable(sid: str, name, values, *, db, commit: bool = True) -> dict:
    """Create *name*, or replace its values when it already exists."""
    name = clean_variable_name(name)
    values = clean_values(values)
    existing = find_variable(sid, name, db=db)
    if existing:
        var_id = existing["id"]
    else:
        var_id = str(uuid.uuid4())
        db.execute(
            "INSERT INTO variable (id, session_id, name, created_at) VALUES (?,?,?,?)",
            (var_id, sid, name, utc_now().isoformat()),
        )
    _write_values(var_id, values, db=db)
    if commit:
        db.commit()
    return get_variable(sid, var_id, db=db)


def update_variable(sid: str, var_id: str, *, name=None, values=None, db) -> dict:
    current = get_variable(sid, var_id, db=db)
    if current is None:
        raise LookupError("Variable not found")

    if name is not None:
        name = clean_variable_name(name)
        clash = find_variable(sid, name, db=db)
        if clash and clash["id"] != var_id:
            raise DuplicateName(f'A variable named "{name}" already exists')
        db.execute("UPDATE variable SET name=? WHERE id=?", (name, var_id))
    if values is not None:
        _write_values(var_id, clean_values(values), db=db)
    db.commit()
    return get_variable(sid, var_id, db=db)


def delete_variable(sid: str, var_id: str, *, db) -> None:
    cur = db.execute("DELETE FROM variable WHERE id=? AND session_id=?", (var_id, sid))
    db.commit()
    if cur.rowcount == 0:
        raise LookupError("Variable not found")


def add_variable_value(sid: str, name, value, *, db, commit: bool = True) -> dict:
    """Append *value* to *name* (no repeats); create the variable if needed."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Value is required and must be a string")
    value = value.strip()
    name = clean_variable_name(name)
    var = find_variable(sid, name, db=db)
    if var is None:
        return save_variable(sid, name, [value], db=db, commit=commit)
    if value in var["values"]:
        return var
    db.execute(
        "INSERT INTO variable_value (variable_id, ord, value) "
        "VALUES (?, (SELECT COALESCE(MAX(ord), -1) + 1 FROM variable_value WHERE variable_id=?), ?)",
        (var["id"], var["id"], value),
    )
    if commit:
        db.commit()
    return get_variable(sid, var["id"], db=db)


def import_variables(sid: str, text: str, *, db) -> list[dict]:
    """Feed ``name=value`` lines through :func:`add_variable_value`."""
    touched: dict[str, dict] = {}
    for name, value in parse_variable_lines(text):
        try:
            var = add_variable_value(sid, name, value, db=db, commit=False)
        except ValueError as exc:
            app.logger.warning("skipping variable %r on import: %s", name, exc)
            continue
        touched[var["id"]] = var
    db.commit()
    return list(touched.values())


###############################################################################
# Export / import
###############################################################################
def export_text(notes, *, tz: str) -> str:
    """Plain-text dump, newest first, one block per calendar day."""
    out = "NoteTimes Export\n"
    out += "================\n\n"
    days: dict[str, list] = {}
    for n in notes:
        d = local_dt(n["createdAt"], tz)
        days.setdefault(f"{d.month}/{d.day}/{d.year}", []).append((d, n))
    for day, items in days.items():
        out += f"{day}\n"
        out += "-" * len(day) + "\n"
        for d, n in items:
            out += f"{d:%H:%M:%S} {n['content']}\n"
            if n["tags"]:
                out += f"Tags: {', '.join(n['tags'])}\n"
            out += "\n"
        out += "\n"
    return out


def export_json(notes, variables, *, now: datetime) -> dict:
    return {
        "exportedAt": now.isoformat(),
        "notes": notes,
        "variables": variables,
    }


def _export_body(note: dict) -> str:
    return note["content"] or note["originalContent"]


def export_html_body(text: str, variables) -> Markup:
    """Escaped note body, variables as ``<span class="variable">``, newlines as <br>."""
    parts: list = []
    last = 0
    for s in find_variable_spans(text, variables):
        parts.append(escape(text[last : s["start"]]))
        label = s["value"] if s["type"] == "resolved_value" else s["text"]
        parts.append(Markup('<span class="variable">{}</span>').format(label))
        last = s["end"]
    parts.append(escape(text[last:]))
    html = str(Markup("").join(parts))
    return Markup(html.replace("\n", "<br>"))


def export_markdown_body(text: str, variables) -> str:
    parts: list[str] = []
    last = 0
    for s in find_variable_spans(text, variables):
        parts.append(text[last : s["start"]])
        label = s["value"] if s["type"] == "resolved_value" else s["text"]
        parts.append(f"`{label}`")
        last = s["end"]
    parts.append(text[last:])
    return "".join(parts)


def _export_title(folder: str | None) -> str:
    return f"{folder} Notes" if folder else "All Notes"


def _date_range(notes, tz: str) -> str | None:
    if not notes:
        return None
    first = local_dt(notes[0]["createdAt"], tz)
    last = local_dt(notes[-1]["createdAt"], tz)
    return f"{fmt_short_day(first)} - {fmt_short_day(last)}"


def export_html(notes, variables, *, folder: str | None = None, tz: str, now: datetime) -> str:
    ordered = sorted(notes, key=lambda n: n["createdAt"])
    local_now = now.astimezone(ZoneInfo(tz))
    rows = [
        {
            "stamp": fmt_long(local_dt(n["createdAt"], tz)),
            "tags": n["tags"],
            "folder": n["folder"] if n["folder"] != DEFAULT_FOLDER and not folder else None,
            "body": export_html_body(_export_body(n), variables),
        }
        for n in ordered
    ]
    return render_template_string(
        TEMPL_EXPORT_HTML,
        title=_export_title(folder),
        page_title=f"{_export_title(folder)} - {fmt_short_day(local_now)}",
        generated=fmt_long(local_now),
        total=len(ordered),
        date_range=_date_range(ordered, tz),
        rows=rows,
    )


def export_markdown(
    notes, variables, *, folder: str | None = None, tz: str, now: datetime
) -> str:
    ordered = sorted(notes, key=lambda n: n["createdAt"])
    local_now = now.astimezone(ZoneInfo(tz))
    out = f"# {_export_title(folder)}\n\n"
    out += f"*Generated on {fmt_long(local_now)}*\n\n"
    out += f"**Total Notes:** {len(ordered)}  \n"
    date_range = _date_range(ordered, tz)
    if date_range:
        out += f"**Date Range:** {date_range}\n\n"
    else:
        out += "\n"

    for i, n in enumerate(ordered):
        out += f"## Note {i + 1}\n\n"
        out += f"**Date:** {fmt_long(local_dt(n['createdAt'], tz))}\n\n"
        if n["tags"]:
            out += f"**Tags:** {', '.join('#' + t for t in n['tags'])}\n\n"
        if n["folder"] != DEFAULT_FOLDER and not folder:
            out += f"**Folder:** {n['folder']}\n\n"
        out += f"{export_markdown_body(_export_body(n), variables)}\n\n"
        if i < len(ordered) - 1:
            out += "---\n\n"
    return out


def export_filename(folder: str | None, ext: str, *, now: datetime) -> str:
    stem = secure_filename(folder or "") or ("folder" if folder else "")
    prefix = f"{stem}-notes" if folder else "all-notes"
    return f"{prefix}-{now:%Y-%m-%d}.{ext}"


def build_export(sid: str, fmt: str, *, folder: str | None = None, db):
    """Return ``(body, mimetype, filename)`` for one of EXPORT_FORMATS."""
    now = utc_now()
    tz = tz_name(sid)
    notes = list_notes(sid, db=db, folder=folder)
    variables = list_variables(sid, db=db)
    if fmt == "text":
        return export_text(notes, tz=tz), "text/plain", "notes.txt"
    if fmt == "json":
        doc = export_json(notes, variables, now=now)
        return json.dumps(doc, ensure_ascii=False, indent=2), "application/json", "notes.json"
    if fmt == "html":
        body = export_html(notes, variables, folder=folder, tz=tz, now=now)
        return body, "text/html", export_filename(folder, "html", now=now)
    if fmt == "markdown":
        body = export_markdown(notes, variables, folder=folder, tz=tz, now=now)
        return body, "text/markdown", export_filename(folder, "md", now=now)
    raise ValueError(f"format must be one of {', '.join(EXPORT_FORMATS)}")


def import_export_doc(sid: str, doc, *, db) -> dict:
    """
    Load a JSON export back into *sid*.
    Notes keep their timestamps; variable values are merged.
    """
    if not isinstance(doc, dict):
        raise ValueError("Export document must be a JSON object")
    notes = doc.get("notes") or []
    variables = doc.get("variables") or []
    if not isinstance(notes, list) or not isinstance(variables, list):
        raise ValueError("'notes' and 'variables' must be lists")

    added_notes = 0
    for n in notes:
        if not isinstance(n, dict) or not isinstance(n.get("content"), str):
            raise ValueError("Every note needs a string 'content'")
        original = n.get("originalContent")
        tags = n.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValueError("Note tags must be a list of strings")
        created = n.get("createdAt")
        try:
            created = (
                parse_ts(created).astimezone(timezone.utc).isoformat()
                if isinstance(created, str)
                else None
            )
        except ValueError:
            created = None
        folder = n.get("folder")
        folder = (
            clean_folder_name(folder)
            if isinstance(folder, str) and folder.strip()
            else None
        )
        create_note(
            sid,
            content=n["content"],
            original_content=original if isinstance(original, str) else n["content"],
            tags=tags,
            folder=folder,
            created_at=created,
            db=db,
            commit=False,
        )
        added_notes += 1

    merged = 0
    for v in variables:
        if not isinstance(v, dict):
            raise ValueError("Every variable must be an object")
        values = clean_values(v.get("values"))
        name = clean_variable_name(v.get("name"))
        if not values:
            if find_variable(sid, name, db=db) is None:
                save_variable(sid, name, [], db=db, commit=False)
        for value in values:
            add_variable_value(sid, name, value, db=db, commit=False)
        merged += 1

    db.commit()
    app.logger.info(
        "imported %d notes and %d variables into %s", added_notes, merged, sid
    )
    return {"notes": added_notes, "variables": merged}


###############################################################################
# Request guards
###############################################################################
def rate_limit(max_requests: int, window: int = 60):
    hits: DefaultDict[str, deque] = defaultdict(deque)

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not app.config.get("RATE_LIMIT_ENABLED", True):
                return view(*args, **kwargs)
            now = time()
            # left-most entry after ProxyFix = real client
            ip = (
                request.access_route[0] if request.access_route else request.remote_addr
            ) or "unknown"

            dq = hits[ip]
            while dq and now - dq[0] > window:
                dq.popleft()

            if len(dq) >= max_requests:
                retry_after = int(window - (now - dq[0]))
                return Response(
                    "Too many requests – try again later.",
                    status=429,
                    headers={"Retry-After": str(retry_after)},
                )

            dq.append(now)
            return view(*args, **kwargs)

        return wrapped

    return decorator


SAFE_METHODS = {"GET", "HEAD", "OPTIONS", "TRACE"}


def _csrf_token() -> str:
    """One token per browser session."""
    if "csrf" not in session:
        session["csrf"] = secrets.token_urlsafe(32)
    return session["csrf"]


@app.before_request
def csrf_protect():
    # JSON API is authenticated by the session id alone
    if request.method in SAFE_METHODS or request.path.startswith("/api/"):
        return
    token = session.get("csrf", "")
    sent = request.form.get("csrf") or request.headers.get("X-CSRFToken", "")
    if not token or not secrets.compare_digest(token, sent):
        app.logger.warning("csrf check failed on %s", request.path)
        abort(403)


@app.after_request
def sec_headers(resp):
    resp.headers.update(
        {
            "X-Frame-Options": "DENY",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "strict-origin-when-cross-origin",
        }
    )
    return resp


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def api_error(message: str, status: int, **extra):
    return {"message": message, **extra}, status


###############################################################################
# API – session + settings
###############################################################################
@app.route("/api/session")
def api_session():
    return session_dict(get_session(current_sid(), db=get_db()))


@app.route("/api/settings", methods=["GET", "PUT"])
def api_settings():
    sid = current_sid()
    if request.method == "PUT":
        data = _json_body()
        if "timezone" in data:
            tz = data["timezone"]
            if not isinstance(tz, str) or tz not in TIMEZONES:
                return api_error("Unknown timezone", 400)
            set_setting("timezone", tz, sid=sid)
        if "fontSize" in data:
            set_setting("font_size", str(clamp_font_size(data["fontSize"])), sid=sid)
    return settings_dict(sid)


###############################################################################
# API – notes
###############################################################################
def _note_errors(data: dict) -> list[str]:
    errors = []
    if not isinstance(data.get("content"), str):
        errors.append("content: expected string")
    if "originalContent" in data and not isinstance(data["originalContent"], str):
        errors.append("originalContent: expected string")
    tags = data.get("tags")
    if tags is not None and (
        not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)
    ):
        errors.append("tags: expected list of strings")
    folder = data.get("folder")
    if folder is not None and not isinstance(folder, str):
        errors.append("folder: expected string")
    attachments = data.get("attachments") or []
    if not isinstance(attachments, list) or not all(
        isinstance(a, dict) and isinstance(a.get("name"), str) for a in attachments
    ):
        errors.append("attachments: expected list of {name, type}")
    return errors


@app.route("/api/notes", methods=["GET", "POST", "DELETE"])
def api_notes():
    sid = current_sid()
    db = get_db()

    if request.method == "DELETE":
        n = delete_all_notes(sid, db=db)
        app.logger.info("cleared %d notes for %s", n, sid)
        return {"message": "All notes deleted"}

    if request.method == "POST":
        data = _json_body()
        errors = _note_errors(data)
        if errors:
            return api_error("Invalid note data", 400, errors=errors)
        attachments = data.get("attachments") or []
        if not data["content"].strip() and not attachments:
            return api_error("Invalid note data", 400, errors=["content: empty note"])

        if "originalContent" in data:
            fields = {
                "content": data["content"],
                "originalContent": data["originalContent"],
                "tags": data.get("tags") or [],
            }
        else:
            fields = compose_note(
                data["content"], list_variables(sid, db=db), attachments
            )
            if data.get("tags") is not None:
                fields["tags"] = data["tags"]
        folder = data.get("folder")
        if folder is not None:
            try:
                folder = clean_folder_name(folder)
            except ValueError as exc:
                return api_error("Invalid note data", 400, errors=[f"folder: {exc}"])
        return create_note(
            sid,
            content=fields["content"],
            original_content=fields["originalContent"],
            tags=fields["tags"],
            folder=folder,
            db=db,
        )

    order = request.args.get("sort", "newest")
    if order not in SORT_OPTIONS:
        return api_error(f"sort must be one of {', '.join(SORT_OPTIONS)}", 400)
    notes = list_notes(
        sid,
        db=db,
        folder=request.args.get("folder") or None,
        tag=request.args.get("tag") or None,
    )
    return sort_notes(notes, order, list_variables(sid, db=db))


@app.route("/api/notes/<note_id>", methods=["DELETE"])
def api_delete_note(note_id):
    try:
        delete_note(current_sid(), note_id, db=get_db())
    except LookupError as exc:
        return api_error(str(exc), 404)
    return {"message": "Note deleted"}


@app.route("/api/notes/folder/<path:folder>")
def api_notes_by_folder(folder):
    return list_notes(current_sid(), db=get_db(), folder=folder)


@app.route("/api/tags")
def api_tags():
    return tag_counts(list_notes(current_sid(), db=get_db()))


###############################################################################
# API – folders
###############################################################################
@app.route("/api/folders", methods=["GET", "POST"])
def api_folders():
    sid = current_sid()
    db = get_db()
    if request.method == "POST":
        try:
            name = create_folder(sid, _json_body().get("name"), db=db)
        except ValueError as exc:
            return api_error(str(exc), 400)
        return {"name": name, "message": "Folder created successfully"}
    return list_folders(sid, db=db)


@app.route("/api/folders/<path:name>", methods=["DELETE"])
def api_delete_folder(name):
    try:
        delete_folder(current_sid(), name, db=get_db())
    except ValueError as exc:
        return api_error(str(exc), 400)
    return {"message": f'Folder "{name}" deleted'}


###############################################################################
# API – variables
###############################################################################
@app.route("/api/variables", methods=["GET", "POST"])
def api_variables():
    sid = current_sid()
    db = get_db()
    if request.method == "POST":
        data = _json_body()
        try:
            return save_variable(sid, data.get("name"), data.get("values"), db=db)
        except ValueError as exc:
            return api_error("Invalid variable data", 400, errors=[str(exc)])
    return list_variables(sid, db=db)


@app.route("/api/variables/<var_id>", methods=["PUT", "DELETE"])
def api_variable(var_id):
    sid = current_sid()
    db = get_db()
    if request.method == "DELETE":
        try:
            delete_variable(sid, var_id, db=db)
        except LookupError as exc:
            return api_error(str(exc), 404)
        return {"message": "Variable deleted"}

    data = _json_body()
    try:
        return update_variable(
            sid, var_id, name=data.get("name"), values=data.get("values"), db=db
        )
    except LookupError as exc:
        return api_error(str(exc), 404)
    except DuplicateName as exc:
        return api_error(str(exc), 409)
    except ValueError as exc:
        return api_error("Invalid variable data", 400, errors=[str(exc)])


@app.route("/api/variables/<name>/values", methods=["POST"])
def api_add_variable_value(name):
    try:
        return add_variable_value(
            current_sid(), name, _json_body().get("value"), db=get_db()
        )
    except ValueError as exc:
        return api_error(str(exc), 400)


@app.route("/api/variables/import", methods=["POST"])
@rate_limit(max_requests=20, window=60)
def api_import_variables():
    text = _json_body().get("text")
    if not isinstance(text, str) or not parse_variable_lines(text):
        return api_error(
            "No variables found. Use name=value, name:value, or name,value format.",
            400,
        )
    touched = import_variables(current_sid(), text, db=get_db())
    return {"imported": len(touched), "variables": touched}


###############################################################################
# API – composer helpers
###############################################################################
def _int_arg(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@app.route("/api/autocomplete")
def api_autocomplete():
    text = request.args.get("text", "")
    cursor = _int_arg(request.args.get("cursor"), len(text))
    slash, options = autocomplete(text, cursor, list_variables(current_sid(), db=get_db()))
    return {"slashPos": slash, "options": options}


@app.route("/api/autocomplete/insert", methods=["POST"])
def api_autocomplete_insert():
    data = _json_body()
    text = data.get("text")
    option = data.get("option")
    if not isinstance(text, str) or not isinstance(option, dict):
        return api_error("text and option are required", 400)
    cursor = _int_arg(data.get("cursor"), len(text))
    slash = _int_arg(data.get("slashPos"), -1)
    try:
        new_text, new_cursor = insert_option(text, slash, cursor, option)
    except ValueError as exc:
        return api_error(str(exc), 400)
    return {"text": new_text, "cursor": new_cursor}


@app.route("/api/preview", methods=["POST"])
def api_preview():
    text = _json_body().get("text")
    if not isinstance(text, str):
        return api_error("text is required", 400)
    variables = list_variables(current_sid(), db=get_db())
    fields = compose_note(text, variables)
    return {
        **fields,
        "mentions": count_variable_mentions(text, variables),
        "hasVariables": has_variable_content(text),
        "html": str(highlight_html(text, variables, known_only=False)),
    }


###############################################################################
# API – export / import
###############################################################################
@app.route("/api/export/<fmt>")
@rate_limit(max_requests=60, window=60)
def api_export(fmt):
    if fmt not in EXPORT_FORMATS:
        abort(404)
    folder = request.args.get("folder") or None
    body, mimetype, filename = build_export(current_sid(), fmt, folder=folder, db=get_db())
    return Response(
        body,
        mimetype=mimetype,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.route("/api/import/json", methods=["POST"])
@rate_limit(max_requests=10, window=60)
def api_import_json():
    doc = request.get_json(silent=True)
    try:
        result = import_export_doc(current_sid(), doc, db=get_db())
    except ValueError as exc:
        get_db().rollback()
        return api_error(str(exc), 400)
    return result


###############################################################################
# CLI
###############################################################################
@app.cli.command("init")
def cli_init():
    """Create the database schema (no-op if it is already there)."""
    init_db()
    click.secho("\n✅  Database ready.", fg="green")
    click.echo(app.config["DATABASE"])


@app.cli.command("purge-sessions")
@click.option(
    "--days",
    type=int,
    default=SESSION_IDLE_DAYS,
    show_default=True,
    help="Remove sessions idle for longer than this.",
)
def cli_purge_sessions(days: int):
    """Delete idle sessions and everything they own."""
    n = purge_sessions(days, db=get_db())
    click.echo(f"Removed {n} idle session(s).")


@app.cli.command("export")
@click.option("--session", "sid", required=True, help="Session id to export.")
@click.option(
    "--format", "fmt", type=click.Choice(EXPORT_FORMATS), default="text", show_default=True
)
@click.option("--folder", default=None, help="Only notes in this folder.")
def cli_export(sid: str, fmt: str, folder: str | None):
    """Print one session's notes to stdout."""
    db = get_db()
    if get_session(sid, db=db) is None:
        raise click.ClickException(f"No such session: {sid}")
    body, _mimetype, _filename = build_export(sid, fmt, folder=folder, db=db)
    click.echo(body)


###############################################################################
# Templates
###############################################################################
def _ts_filter(iso: str | None) -> str:
    return fmt_clock(local_dt(iso, tz_name())) if iso else ""


def _day_filter(day: str) -> str:
    return fmt_day(datetime.fromisoformat(day))


app.jinja_env.filters["ts"] = _ts_filter
app.jinja_env.filters["day"] = _day_filter
app.jinja_env.globals.update(
    csrf_token=_csrf_token,
    highlight=highlight_html,
    font_size=font_size,
    version=__version__,
    DEFAULT_FOLDER=DEFAULT_FOLDER,
)


def wrap(body: str) -> str:
    """Glue prolog + page-specific body + epilog."""
    return TEMPL_PROLOG + body + TEMPL_EPILOG


TEMPL_PROLOG = """
<!doctype html>
<html lang="en">
<title>{{ title or 'NoteTimes' }}</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta charset="utf-8">
<style>
html{font-family:-apple-system,BlinkMacSystemFont,"Segoe UI",Roboto,"Helvetica Neue",Arial,sans-serif}
body{margin:0;color:#222;background:#fafaf7;line-height:1.55}
a{color:#3558a6}
.layout{display:grid;grid-template-columns:15rem 1fr;min-height:100vh}
aside{border-right:1px solid #e3e3e0;padding:1.5rem 1rem;background:#fff}
aside h2{font-size:.75rem;text-transform:uppercase;letter-spacing:.06em;color:#888;margin:1.5rem 0 .5rem}
aside ul{list-style:none;padding:0;margin:0}
aside li a{display:flex;justify-content:space-between;padding:.2rem .4rem;border-radius:4px;text-decoration:none;color:inherit}
aside li a[aria-current=page]{background:#eef1f8}
main{max-width:52rem;padding:1.5rem 2rem}
.toolbar{display:flex;gap:.75rem;align-items:center;justify-content:space-between;font-size:.85rem;color:#666;border-bottom:1px solid #e3e3e0;padding-bottom:.5rem}
.day{display:flex;align-items:center;gap:.75rem;color:#888;font-size:.85rem;margin:1.5rem 0 .75rem}
.day::before,.day::after{content:"";flex:1;height:1px;background:#e3e3e0}
.note{display:flex;gap:.75rem;margin-bottom:1rem;position:relative}
.note time{font-family:ui-monospace,monospace;font-size:.75rem;color:#888;min-width:4.5rem;padding-top:.2rem}
.note-body{flex:1;font-family:Georgia,serif;white-space:pre-wrap;font-size:var(--notes-font-size,14px)}
.note form{margin:0}
.note button{background:none;border:0;color:#bbb;cursor:pointer}
.note button:hover{color:#c33}
.tag{display:inline-block;background:#e3f2fd;color:#1976d2;border-radius:1rem;padding:0 .6rem;font-size:.75rem;margin-right:.3rem}
.folder-pill{font-size:.75rem;color:#888}
.var-ref{font-weight:600;color:#6b46c1;background:#f0edff;border:1px solid #c4b5fd;border-radius:5px;padding:0 .3rem}
.var-value{font-weight:600;color:#047857;background:#ecfdf5;border:1px solid #a7f3d0;border-radius:5px;padding:0 .3rem}
.composer{border-top:1px solid #e3e3e0;margin-top:2rem;padding-top:1rem;position:relative}
.composer textarea{width:100%;min-height:5rem;font-family:Georgia,serif;font-size:1rem;padding:.5rem;box-sizing:border-box}
.composer .row{display:flex;gap:.5rem;align-items:center;margin-top:.5rem;font-size:.85rem}
.suggest{position:absolute;bottom:100%;left:0;background:#fff;border:1px solid #ddd;border-radius:6px;box-shadow:0 4px 12px rgba(0,0,0,.1);width:20rem;max-height:16rem;overflow:auto;display:none;z-index:10}
.suggest div{padding:.35rem .6rem;cursor:pointer}
.suggest div small{display:block;color:#888}
.suggest .active{background:#eef1f8}
.flash{background:#323232;color:#fff;padding:.5rem .75rem;border-radius:4px;margin-bottom:1rem;font-size:.85rem}
fieldset{border:1px solid #e3e3e0;border-radius:6px;margin:0 0 1.5rem;padding:1rem}
legend{font-weight:600}
</style>
<body style="--notes-font-size:{{ font_size() }}px">
<div class="layout">
<aside>
  <strong><a href="{{ url_for('index') }}" style="text-decoration:none;color:inherit">NoteTimes</a></strong>
  {% if folders is defined %}
  <h2>Folders</h2>
  <ul>
    <li><a href="{{ url_for('index', tag=tag, sort=sort) }}"
           {% if not folder %}aria-current="page"{% endif %}>All notes <span>{{ total }}</span></a></li>
    {% for name, n in folders.items() %}
    <li><a href="{{ url_for('index', folder=name, tag=tag, sort=sort) }}"
           {% if folder == name %}aria-current="page"{% endif %}>{{ name }} <span>{{ n }}</span></a></li>
    {% endfor %}
  </ul>
  {% if tags %}
  <h2>Tags</h2>
  <ul>
    {% for t in tags %}
    <li><a href="{{ url_for('index', folder=folder, sort=sort) if tag == t.name else url_for('index', folder=folder, tag=t.name, sort=sort) }}"
           {% if tag == t.name %}aria-current="page"{% endif %}>#{{ t.name }} <span>{{ t.count }}</span></a></li>
    {% endfor %}
  </ul>
  {% endif %}
  {% endif %}
  <h2>More</h2>
  <ul>
    <li><a href="{{ url_for('settings') }}"
           {% if request.endpoint == 'settings' %}aria-current="page"{% endif %}>Settings</a></li>
  </ul>
</aside>
<main id="main-content">
  {% with msgs = get_flashed_messages() %}
    {% for m in msgs %}<div class="flash" role="status">{{ m }}</div>{% endfor %}
  {% endwith %}
"""

TEMPL_EPILOG = """
  <footer style="margin-top:3rem;font-size:.75rem;color:#999">NoteTimes v{{ version }}</footer>
</main>
</div>
</body>
</html>
"""

TEMPL_INDEX = wrap("""
{% block body %}
  <div class="toolbar">
    <span>
      {% if tag or folder %}
        Showing {% if tag %}<span class="tag">#{{ tag }}</span>{% endif %}
        {% if folder %}<span class="folder-pill">{{ folder }}</span>{% endif %}
        ({{ shown }} notes)
      {% else %}
        Showing all notes ({{ shown }} total)
      {% endif %}
    </span>
    <span>
      Sort:
      {% for opt in sort_options %}
        {% if opt == sort %}<strong>{{ opt }}</strong>{% else %}
        <a href="{{ url_for('index', folder=folder, tag=tag, sort=opt) }}">{{ opt }}</a>{% endif %}
      {% endfor %}
      &nbsp;·&nbsp;
      <a href="{{ url_for('api_export', fmt='html', folder=folder) }}">HTML</a>
      <a href="{{ url_for('api_export', fmt='markdown', folder=folder) }}">Markdown</a>
    </span>
  </div>

  {% if not days %}
    <p style="text-align:center;color:#888;margin-top:3rem">
      {% if tag %}No notes found with tag "{{ tag }}"{% else %}No notes yet{% endif %}<br>
      <small>Start writing to create your first timestamped note</small>
    </p>
  {% endif %}

  {% for day, day_notes in days %}
    <div class="day">{{ day|day }}</div>
    {% for n in day_notes %}
    <article class="note" id="note-{{ n.id }}">
      <time datetime="{{ n.createdAt }}">{{ n.createdAt|ts }}</time>
      <div style="flex:1">
        {% if n.tags %}<div>{% for t in n.tags %}<span class="tag">{{ t }}</span>{% endfor %}</div>{% endif %}
        {% if n.folder != DEFAULT_FOLDER %}<div class="folder-pill">{{ n.folder }}</div>{% endif %}
        <div class="note-body">{{ highlight(n.originalContent or n.content, variables) }}</div>
      </div>
      <form method="post" action="{{ url_for('delete_note_form', note_id=n.id) }}"
            onsubmit="return confirm('Delete this note?')">
        <input type="hidden" name="csrf" value="{{ csrf_token() }}">
        <button title="Delete note" aria-label="Delete note">✕</button>
      </form>
    </article>
    {% endfor %}
  {% endfor %}

  <form method="post" class="composer" action="{{ url_for('index') }}">
    <input type="hidden" name="csrf" value="{{ csrf_token() }}">
    <div class="suggest" id="suggest" role="listbox"></div>
    <textarea name="content" id="composer" placeholder="Start writing... (type / for variables)"
              autofocus>{{ draft }}</textarea>
    <div class="row">
      <label for="folder-select">Folder</label>
      <select name="folder" id="folder-select">
        {% for name in folders %}
          <option value="{{ name }}" {% if name == (folder or DEFAULT_FOLDER) %}selected{% endif %}>{{ name }}</option>
        {% endfor %}
      </select>
      <input name="new_folder" placeholder="or new folder" size="14">
      <span style="flex:1"></span>
      <button type="submit">Save</button>
    </div>
  </form>
  <script>
  (() => {
    const ta = document.getElementById('composer');
    const box = document.getElementById('suggest');
    let options = [], slashPos = null, active = 0;

    const close = () => { box.style.display = 'none'; options = []; };
    const render = () => {
      box.innerHTML = '';
      options.forEach((o, i) => {
        const el = document.createElement('div');
        el.className = i === active ? 'active' : '';
        el.textContent = o.type === 'value' ? o.value : '/' + o.name;
        const hint = document.createElement('small');
        hint.textContent = o.type === 'value'
          ? `from variable "/${o.name}"` : `${o.valueCount} values available`;
        el.appendChild(hint);
        el.addEventListener('mousedown', (ev) => { ev.preventDefault(); pick(i); });
        box.appendChild(el);
      });
      box.style.display = options.length ? 'block' : 'none';
    };
    const pick = async (i) => {
      const res = await fetch('{{ url_for("api_autocomplete_insert") }}', {
        method: 'POST',
        headers: {'Content-Type': 'application/json'},
        body: JSON.stringify({text: ta.value, cursor: ta.selectionStart,
                              slashPos, option: options[i]}),
      });
      if (!res.ok) return close();
      const data = await res.json();
      ta.value = data.text;
      ta.focus();
      ta.setSelectionRange(data.cursor, data.cursor);
      close();
    };
    ta.addEventListener('input', async () => {
      const qs = new URLSearchParams({text: ta.value, cursor: ta.selectionStart});
      const res = await fetch('{{ url_for("api_autocomplete") }}?' + qs);
      if (!res.ok) return close();
      const data = await res.json();
      slashPos = data.slashPos; options = data.options; active = 0;
      render();
    });
    ta.addEventListener('keydown', (ev) => {
      if (options.length) {
        if (ev.key === 'ArrowDown') { ev.preventDefault(); active = Math.min(active + 1, options.length - 1); render(); }
        else if (ev.key === 'ArrowUp') { ev.preventDefault(); active = Math.max(active - 1, 0); render(); }
        else if (ev.key === 'Tab' || ev.key === 'Enter') { ev.preventDefault(); pick(active); }
        else if (ev.key === 'Escape') { close(); }
      } else if (ev.key === 'Enter' && !ev.shiftKey) {
        ev.preventDefault();
        if (ta.value.trim()) ta.form.submit();
      }
    });
  })();
  </script>
{% endblock %}
""")

TEMPL_SETTINGS = wrap("""
{% block body %}
  <h1 style="font-size:1.4rem">Settings</h1>

  <fieldset>
    <legend>Custom variables</legend>
    <p style="font-size:.85rem;color:#666">Insert them into notes with <code>/variable</code>.</p>
    {% for v in variables %}
    <div style="border-bottom:1px solid #eee;padding:.5rem 0" id="variable-{{ v.name }}">
      <strong>/{{ v.name }}</strong>
      <small style="color:#888">({{ v['values']|length }} values)</small>
      <form method="post" style="display:inline">
        <input type="hidden" name="csrf" value="{{ csrf_token() }}">
        <input type="hidden" name="action" value="delete_variable">
        <input type="hidden" name="variable_id" value="{{ v.id }}">
        <button>Delete</button>
      </form>
      <div>{% for val in v['values'] %}<span class="tag">{{ val }}</span>{% endfor %}</div>
      <form method="post" style="margin-top:.3rem">
        <input type="hidden" name="csrf" value="{{ csrf_token() }}">
        <input type="hidden" name="action" value="add_value">
        <input type="hidden" name="name" value="{{ v.name }}">
        <input name="value" placeholder="Add new value...">
        <button>Add</button>
      </form>
    </div>
    {% endfor %}
    <form method="post" style="margin-top:1rem">
      <input type="hidden" name="csrf" value="{{ csrf_token() }}">
      <input type="hidden" name="action" value="add_variable">
      <input name="name" placeholder="e.g., user">
      <input name="value" placeholder="e.g., John Doe">
      <button>Add variable</button>
    </form>
  </fieldset>

  <fieldset>
    <legend>Import variables</legend>
    <form method="post">
      <input type="hidden" name="csrf" value="{{ csrf_token() }}">
      <input type="hidden" name="action" value="import_variables">
      <textarea name="text" rows="5" style="width:100%;font-family:ui-monospace,monospace"
                placeholder="user=John Doe&#10;company:Acme Inc&#10;project,Alpha Project"></textarea>
      <small style="color:#888">Supported formats: name=value, name:value, name,value</small><br>
      <button>Import variables</button>
    </form>
  </fieldset>

  <fieldset>
    <legend>Display</legend>
    <form method="post">
      <input type="hidden" name="csrf" value="{{ csrf_token() }}">
      <input type="hidden" name="action" value="preferences">
      <label>Note text size ({{ font_min }}–{{ font_max }}px)
        <input type="number" name="font_size" min="{{ font_min }}" max="{{ font_max }}" value="{{ prefs.fontSize }}">
      </label>
      <label>Timezone
        <input name="timezone" value="{{ prefs.timezone }}" list="tz-list">
      </label>
      <datalist id="tz-list">{% for z in timezones %}<option value="{{ z }}">{% endfor %}</datalist>
      <button>Save</button>
    </form>
  </fieldset>

  <fieldset>
    <legend>Export &amp; backup</legend>
    <a href="{{ url_for('api_export', fmt='text') }}">Export all notes as text</a> ·
    <a href="{{ url_for('api_export', fmt='json') }}">Export as JSON</a> ·
    <a href="{{ url_for('api_export', fmt='html') }}">HTML</a> ·
    <a href="{{ url_for('api_export', fmt='markdown') }}">Markdown</a>
  </fieldset>

  <fieldset>
    <legend>Data management</legend>
    <form method="post" onsubmit="return confirm('Are you sure you want to delete all notes? This action cannot be undone.')">
      <input type="hidden" name="csrf" value="{{ csrf_token() }}">
      <input type="hidden" name="action" value="clear_notes">
      <button style="background:#c00;color:#fff">Clear all notes</button>
    </form>
    <small style="color:#888">This action cannot be undone. Please export your notes first.</small>
  </fieldset>
{% endblock %}
""")

TEMPL_404 = wrap("""
{% block body %}
  <h2>Page not found</h2>
  <p>The URL you asked for doesn’t exist.
     <a href="{{ url_for('index') }}">Back to your notes</a>.</p>
{% endblock %}
""")

TEMPL_500 = wrap("""
{% block body %}
  <h2>Internal Server Error</h2>
  <p>Our fault, not yours. Please try again in a minute.</p>
{% endblock %}
""")

TEMPL_EXPORT_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{{ page_title }}</title>
    <style>
        body { font-family: Georgia, serif; line-height: 1.6; max-width: 900px; margin: 0 auto; padding: 40px 20px; color: #333; }
        .header { border-bottom: 2px solid #ddd; margin-bottom: 30px; padding-bottom: 15px; }
        .title { font-size: 24px; font-weight: bold; margin-bottom: 8px; }
        .subtitle, .timestamp, .folder-info { color: #666; font-size: 14px; }
        .timestamp { font-weight: bold; margin-bottom: 8px; }
        .stats { background: #f8f9fa; padding: 15px; border-radius: 8px; margin-bottom: 30px; font-size: 14px; color: #666; }
        .note { margin-bottom: 40px; border-bottom: 1px solid #eee; padding-bottom: 30px; }
        .note:last-child { border-bottom: none; }
        .tag { background: #e3f2fd; color: #1976d2; padding: 4px 12px; border-radius: 16px; font-size: 12px; margin-right: 8px; display: inline-block; }
        .content { font-size: 16px; line-height: 1.7; white-space: pre-wrap; margin-top: 15px; }
        .variable { background: #ecebff; color: #6b46c1; padding: 2px 8px; margin: 0 2px; border-radius: 6px; font-weight: 600; border: 1px solid #c4b5fd; display: inline-block; }
        .footer { margin-top: 60px; padding-top: 20px; border-top: 1px solid #eee; font-size: 12px; color: #999; text-align: center; }
    </style>
</head>
<body>
    <div class="header">
        <div class="title">{{ title }}</div>
        <div class="subtitle">Generated on {{ generated }}</div>
    </div>

    <div class="stats">
        Total Notes: {{ total }}{% if date_range %} | Date Range: {{ date_range }}{% endif %}
    </div>
{% for r in rows %}
    <div class="note">
        <div class="note-header">
            <div class="timestamp">{{ r.stamp }}</div>
            {% if r.tags %}<div class="tags">{% for t in r.tags %}<span class="tag">#{{ t }}</span>{% endfor %}</div>{% endif %}
            {% if r.folder %}<div class="folder-info">Folder: {{ r.folder }}</div>{% endif %}
        </div>
        <div class="content">{{ r.body }}</div>
    </div>
{% endfor %}
    <div class="footer">
        Generated from NoteTimes
    </div>
</body>
</html>
"""


###############################################################################
# Pages
###############################################################################
@app.route("/", methods=["GET", "POST"])
def index():
    sid = current_sid()
    db = get_db()
    variables = list_variables(sid, db=db)

    draft = ""
    if request.method == "POST":
        draft = request.form.get("content", "")
        folder = request.form.get("folder") or DEFAULT_FOLDER
        new_folder = request.form.get("new_folder", "").strip()
        try:
            if new_folder:
                folder = create_folder(sid, new_folder, db=db)
            else:
                folder = clean_folder_name(folder)
        except ValueError as exc:
            flash(str(exc))
        else:
            if not draft.strip():
                flash("Text is required.")
            else:
                fields = compose_note(draft, variables)
                create_note(
                    sid,
                    content=fields["content"],
                    original_content=fields["originalContent"],
                    tags=fields["tags"],
                    folder=folder,
                    db=db,
                )
                return redirect(url_for("index", folder=request.args.get("folder")))

    folder = request.args.get("folder") or None
    tag = request.args.get("tag") or None
    sort = request.args.get("sort", "newest")
    if sort not in SORT_OPTIONS:
        sort = "newest"

    all_notes = list_notes(sid, db=db)
    shown = [
        n
        for n in all_notes
        if (not folder or n["folder"] == folder) and (not tag or tag in n["tags"])
    ]
    shown = sort_notes(shown, sort, variables)

    return render_template_string(
        TEMPL_INDEX,
        title="NoteTimes",
        days=group_by_day(shown, tz=tz_name()),
        shown=len(shown),
        total=len(all_notes),
        folders=folder_counts(sid, db=db),
        tags=tag_counts(all_notes),
        folder=folder,
        tag=tag,
        sort=sort,
        sort_options=SORT_OPTIONS,
        variables=variables,
        draft=draft,
    )


@app.route("/notes/<note_id>/delete", methods=["POST"])
def delete_note_form(note_id):
    try:
        delete_note(current_sid(), note_id, db=get_db())
    except LookupError:
        abort(404)
    return redirect(request.referrer or url_for("index"))


@app.route("/settings", methods=["GET", "POST"])
def settings():
    sid = current_sid()
    db = get_db()

    if request.method == "POST":
        action = request.form.get("action", "")
        try:
            if action == "add_variable":
                value = request.form.get("value", "").strip()
                if not value:
                    raise ValueError("Both variable name and value are required.")
                save_variable(sid, request.form.get("name"), [value], db=db)
                flash("Variable created.")
            elif action == "delete_variable":
                delete_variable(sid, request.form.get("variable_id", ""), db=db)
                flash("Variable deleted.")
            elif action == "add_value":
                add_variable_value(
                    sid, request.form.get("name"), request.form.get("value"), db=db
                )
                flash("Value added.")
            elif action == "import_variables":
                touched = import_variables(sid, request.form.get("text", ""), db=db)
                if not touched:
                    raise ValueError(
                        "No variables found. Use name=value, name:value, or name,value format."
                    )
                flash(f"Successfully imported {len(touched)} variables.")
            elif action == "preferences":
                set_setting(
                    "font_size", str(clamp_font_size(request.form.get("font_size"))), sid=sid
                )
                tz = request.form.get("timezone", "").strip()
                if tz:
                    if tz not in TIMEZONES:
                        raise ValueError(f"Unknown timezone: {tz}")
                    set_setting("timezone", tz, sid=sid)
                flash("Settings saved.")
            elif action == "clear_notes":
                delete_all_notes(sid, db=db)
                flash("All notes cleared.")
            else:
                abort(400)
        except (LookupError, ValueError) as exc:
            flash(str(exc))
        return redirect(url_for("settings"))

    return render_template_string(
        TEMPL_SETTINGS,
        title="Settings – NoteTimes",
        variables=list_variables(sid, db=db),
        prefs=settings_dict(sid),
        font_min=FONT_SIZE_MIN,
        font_max=FONT_SIZE_MAX,
        timezones=sorted(TIMEZONES),
    )


@app.route("/robots.txt")
def robots():
    return (
        Response("User-agent: *\nDisallow: /\n", mimetype="text/plain"),
        200,
        {"Cache-Control": "public, max-age=86400"},
    )


###############################################################################
# Error pages
###############################################################################
def _wants_json() -> bool:
    return request.path.startswith("/api/")


@app.errorhandler(400)
def bad_request(exc):
    if _wants_json():
        return api_error("Bad request", 400)
    return exc.get_response()


@app.errorhandler(404)
def not_found(exc):
    if _wants_json():
        return api_error("Not found", 404)
    return render_template_string(TEMPL_404, title="Not found – NoteTimes"), 404


@app.errorhandler(500)
def internal_error(exc):
    """
    Flask has already logged the traceback by the time this runs.
    In debug mode the Werkzeug debugger takes over instead.
    """
    if _wants_json():
        return api_error("Internal server error", 500)
    return render_template_string(TEMPL_500, title="Error – NoteTimes"), 500


###############################################################################
# main
###############################################################################
if __name__ == "__main__":
    with app.app_context():
        init_db()
    app.run(debug=True)
