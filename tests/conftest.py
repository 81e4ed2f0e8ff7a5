"""
tests/conftest.py
"""
from __future__ import annotations

import datetime as _dt
import itertools
from pathlib import Path
from typing import Generator

import pytest
from flask.testing import FlaskClient
from pytest import MonkeyPatch

# The single-file app lives here:
from notetimes.app import app, init_db


@pytest.fixture(scope="session")
def _tmp_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """One temp file for the whole test session (faster than per-test)."""
    db_file = tmp_path_factory.mktemp("data") / "test.sqlite3"
    return db_file


@pytest.fixture(scope="session", autouse=True)
def _configure_app(_tmp_db_path: Path) -> None:
    """
    Configure the Flask app *once* before the first test is collected.
    """
    app.config.update(
        TESTING=True,
        DATABASE=str(_tmp_db_path),
        # rate limiting has its own test that switches it back on
        RATE_LIMIT_ENABLED=False,
        TIMEZONE="UTC",
    )
    with app.app_context():
        init_db()


@pytest.fixture
def client() -> Generator[FlaskClient, None, None]:
    """
    Gives each test an application context *and* a fresh test client.
    A fresh client has an empty cookie jar, so every test gets its own
    anonymous session.
    """
    with app.test_client() as client:
        with app.app_context():
            yield client


@pytest.fixture
def sid(client) -> str:
    """Session id of the test client (minted on first request)."""
    return client.get("/api/session").get_json()["sessionId"]


CSRF = "test-token"


@pytest.fixture
def csrf(client) -> str:
    """Put a known CSRF token into the Flask session and return it."""
    with client.session_transaction() as s:
        s["csrf"] = CSRF
    return CSRF


@pytest.fixture(autouse=True, scope="session")
def _fast_clock():
    """
    Patch notetimes.app.utc_now for the whole test session so every call
    returns an ever-increasing timestamp.  No need for time.sleep().
    """
    from notetimes import app as notetimes_app  # import here to avoid early import

    counter = itertools.count()         # 0, 1, 2, …

    base = _dt.datetime(2099, 1, 1, tzinfo=_dt.timezone.utc)
    def _fake_now():
        return base + _dt.timedelta(seconds=next(counter))

    mp = MonkeyPatch()
    mp.setattr(notetimes_app, "utc_now", _fake_now)

    yield                               # tests run here

    mp.undo()                           # clean up at session end
