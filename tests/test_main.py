import sqlite3

from click.testing import CliRunner

import main


def test_version_shows_overrides_without_secrets():
    runner = CliRunner()
    result = runner.invoke(main.cli, [
        "--dbtype", "postgres", "--host", "db.internal", "--user", "app", "--password", "hunter2",
        "--db", "shop", "--provider", "claude", "--model", "claude-sonnet-4-5",
        "--timeout-query", "12", "version",
    ])
    assert result.exit_code == 0, result.output
    assert "postgres app@db.internal:5432/shop" in result.output
    assert "claude (claude-sonnet-4-5)" in result.output
    assert "query 12s" in result.output
    assert "mysql, postgres, sqlite | claude, gemini, ollama, openai" in result.output
    assert "hunter2" not in result.output


def test_inspect_prints_sqlite_schema(tmp_path, monkeypatch):
    path = tmp_path / "shop.db"
    raw = sqlite3.connect(path)
    raw.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT)")
    raw.commit()
    raw.close()
    monkeypatch.setattr(main, "setup_logger", lambda *args, **kwargs: None)

    result = CliRunner().invoke(main.cli, ["--dbtype", "sqlite", "--file", str(path), "inspect"])

    assert result.exit_code == 0, result.output
    assert "DATABASE SCHEMA:" in result.output
    assert "TABLE: users" in result.output


def test_inspect_reports_connection_failure(monkeypatch):
    monkeypatch.setattr(main, "setup_logger", lambda *args, **kwargs: None)
    result = CliRunner().invoke(main.cli, ["--dbtype", "oracle", "inspect"])
    assert result.exit_code == 1
    assert "unsupported database driver" in result.output
