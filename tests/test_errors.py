import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import StaticPool

from citetrack import db
from citetrack.errors import (
    SchemaNotInitializedError,
    StorageError,
    is_schema_missing_error,
    missing_table_name,
    schema_not_initialized_message,
)


def _operational_error(message: str) -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception(message))


def test_missing_table_name_sqlite() -> None:
    exc = _operational_error("no such table: clients")
    assert missing_table_name(exc) == "clients"
    assert is_schema_missing_error(exc)


def test_missing_table_name_postgres() -> None:
    exc = _operational_error('relation "domain_tags" does not exist')
    assert missing_table_name(exc) == "domain_tags"


def test_other_errors_are_not_schema_errors() -> None:
    assert not is_schema_missing_error(_operational_error("database is locked"))


def test_schema_message_mentions_init_command() -> None:
    message = schema_not_initialized_message(_operational_error("no such table: runs"))
    assert "missing table `runs`" in message
    assert "citetrack init-db" in message


@pytest.mark.asyncio
async def test_uninitialized_database_raises_schema_error(monkeypatch) -> None:
    bare = db.create_engine_for(
        "sqlite+aiosqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    monkeypatch.setattr(db, "engine", bare)
    monkeypatch.setattr(db, "async_session_factory", async_sessionmaker(bare, expire_on_commit=False))

    with pytest.raises(SchemaNotInitializedError) as exc_info:
        async with db.get_session() as session:
            await db.list_clients(session)

    assert isinstance(exc_info.value, StorageError)
    assert exc_info.value.exit_code == 1
    await bare.dispose()


@pytest.mark.asyncio
async def test_other_database_failures_become_storage_errors(engine) -> None:
    with pytest.raises(StorageError) as exc_info:
        async with db.get_session() as session:
            await session.execute(text("SELECT * FROM clients WHERE"))

    assert not isinstance(exc_info.value, SchemaNotInitializedError)
    assert "Database operation failed" in exc_info.value.message


@pytest.mark.asyncio
async def test_foreign_keys_are_enforced(engine) -> None:
    with pytest.raises(StorageError):
        async with db.get_session() as session:
            await session.execute(text("INSERT INTO queries (client_id, query_text, is_active) VALUES (999, 'q', 1)"))
