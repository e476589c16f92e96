"""Tests for the LabBook CLI against a file-backed SQLite database."""

import pytest
from typer.testing import CliRunner

from labbook.cli import app
from labbook.config import reset_config

runner = CliRunner()


@pytest.fixture(autouse=True)
def file_database(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'labbook.db'}")
    reset_config()
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.output


def _create(email: str, *extra: str):
    return runner.invoke(
        app,
        ["create-user", email, "--first-name", "Olive", "--last-name", "Owner", "--password", "pw-123", *extra],
    )


def test_create_and_verify_user():
    created = _create("Olive@Soil.test")
    assert created.exit_code == 0, created.output
    assert "Created user Olive@Soil.test" in created.output

    verified = runner.invoke(app, ["verify-user", "olive@soil.test"])
    assert verified.exit_code == 0, verified.output
    assert "0 booking(s) released" in verified.output


def test_duplicate_user_is_rejected():
    assert _create("olive@soil.test").exit_code == 0

    again = _create("olive@soil.test")

    assert again.exit_code == 1
    assert "already exists" in again.output


def test_verify_unknown_user():
    result = runner.invoke(app, ["verify-user", "nobody@soil.test"])

    assert result.exit_code == 1
    assert "No account" in result.output


def test_purge_and_stats_on_empty_database():
    purged = runner.invoke(app, ["purge-drafts", "--days", "3"])
    stats = runner.invoke(app, ["stats"])

    assert purged.exit_code == 0, purged.output
    assert "Deleted 0 draft(s)" in purged.output
    assert stats.exit_code == 0, stats.output
    assert "all" in stats.output


def test_complete_workspace_on_empty_database():
    result = runner.invoke(app, ["complete-workspace"])

    assert result.exit_code == 0, result.output
    assert "Completed 0 booking(s)" in result.output
