"""
tests/test_cli.py
"""
from notetimes.app import app, create_session, get_db, get_session


def test_init_is_idempotent(client):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["init"])
    assert result.exit_code == 0
    assert "Database ready." in result.output


def test_purge_sessions(client):
    db = get_db()
    create_session("cli-stale", db=db)
    db.execute(
        "UPDATE user_session SET last_active_at='2001-01-01T00:00:00+00:00' "
        "WHERE session_id='cli-stale'"
    )
    db.commit()

    result = app.test_cli_runner().invoke(args=["purge-sessions", "--days", "30"])
    assert result.exit_code == 0
    assert "idle session(s)" in result.output
    assert get_session("cli-stale", db=get_db()) is None


def test_export_markdown(client):
    client.post(
        "/api/notes", json={"content": "cli /project"}, headers={"X-Session-Id": "cli-exp"}
    )
    result = app.test_cli_runner().invoke(
        args=["export", "--session", "cli-exp", "--format", "markdown"]
    )
    assert result.exit_code == 0
    assert result.output.startswith("# All Notes")
    assert "cli `/project`" in result.output


def test_export_unknown_session(client):
    result = app.test_cli_runner().invoke(args=["export", "--session", "nobody-here"])
    assert result.exit_code != 0
    assert "No such session" in result.output
