import json

import pytest
from click.testing import CliRunner
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import NullPool

from citetrack import db
from citetrack.cli import main


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    """File-backed database; each command runs in its own event loop."""
    file_engine = db.create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}", poolclass=NullPool)
    monkeypatch.setattr(db, "engine", file_engine)
    monkeypatch.setattr(db, "async_session_factory", async_sessionmaker(file_engine, expire_on_commit=False))
    return file_engine


def test_cost_estimate_json(runner) -> None:
    result = runner.invoke(main, ["cost-estimate", "--model", "sonar-pro", "--count", "10", "--json"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["estimated_cost"] == 0.081
    assert data["query_count"] == 10
    assert data["pricing"]["output"] == 15.0


def test_cost_estimate_unknown_model_uses_default_pricing(runner) -> None:
    result = runner.invoke(main, ["cost-estimate", "--model", "mystery", "--json"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["estimated_cost"] == 0.0007


def test_client_and_tag_workflow(runner, cli_db) -> None:
    result = runner.invoke(main, ["init-db"])
    assert result.exit_code == 0, result.output
    assert "74 system tags added" in result.output

    result = runner.invoke(main, ["init-db"])
    assert "0 system tags added" in result.output

    result = runner.invoke(main, ["client", "add", "Acme", "--domain", "www.acme.com"])
    assert result.exit_code == 0, result.output
    assert "Created client 1" in result.output
    assert "acme.com" in result.output

    result = runner.invoke(main, ["query", "add", "1", "best wallets", "top exchanges"])
    assert result.exit_code == 0, result.output
    assert "Added query 2" in result.output

    result = runner.invoke(main, ["tags", "add", "example.com", "news"])
    assert result.exit_code == 0, result.output
    assert "example.com" in result.output

    result = runner.invoke(main, ["tags", "list", "--category", "news"])
    assert result.exit_code == 0, result.output
    assert "example.com" in result.output
    assert "coindesk.com" in result.output


def test_deleting_system_tag_fails(runner, cli_db) -> None:
    runner.invoke(main, ["init-db"])

    result = runner.invoke(main, ["tags", "delete", "1"])

    assert result.exit_code == 1
    assert "Cannot delete system tags" in result.output


def test_invalid_category_rejected_by_cli(runner, cli_db) -> None:
    runner.invoke(main, ["init-db"])

    result = runner.invoke(main, ["tags", "add", "example.com", "podcast"])

    assert result.exit_code == 2


def test_missing_client_reports_not_found(runner, cli_db) -> None:
    runner.invoke(main, ["init-db"])

    result = runner.invoke(main, ["client", "delete", "42", "--yes"])

    assert result.exit_code == 1
    assert "Client not found: 42" in result.output


def test_stats_json_for_new_client(runner, cli_db) -> None:
    runner.invoke(main, ["init-db"])
    runner.invoke(main, ["client", "add", "Acme"])

    result = runner.invoke(main, ["stats", "1", "--json"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["total_runs"] == 0
    assert data["top_domains"] == []


def test_uninitialized_database_hint(runner, cli_db) -> None:
    result = runner.invoke(main, ["client", "list"])

    assert result.exit_code == 1
    assert "citetrack init-db" in result.output
