"""Error types and helpers for the citation tracker."""

from __future__ import annotations

import re

import click


class TrackerError(click.ClickException):
    """Base class for every error the tracker raises on purpose."""


class ValidationError(TrackerError):
    """A required field is missing or empty."""


class NotFoundError(TrackerError):
    """A referenced client, query, run or tag does not exist."""


class ForbiddenError(TrackerError):
    """The operation is not allowed on this record (e.g. system tags)."""


class UpstreamError(TrackerError):
    """The answer engine call failed. Not retried internally."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class StorageError(TrackerError):
    """The persistence layer failed."""


class SchemaNotInitializedError(StorageError):
    """Raised when the database schema/migrations have not been applied."""


_PG_MISSING_RELATION_RE = re.compile(r'relation "(?P<table>[^"]+)" does not exist', re.IGNORECASE)
_SQLITE_MISSING_TABLE_RE = re.compile(r"no such table:\s*(?P<table>[A-Za-z0-9_]+)", re.IGNORECASE)


def _unwrap_exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def missing_table_name(exc: BaseException) -> str | None:
    """Best-effort extraction of the missing table name from a DB exception."""
    for e in _unwrap_exception_chain(exc):
        message = str(e)
        match = _PG_MISSING_RELATION_RE.search(message) or _SQLITE_MISSING_TABLE_RE.search(message)
        if match:
            return match.group("table")
    return None


def is_schema_missing_error(exc: BaseException) -> bool:
    """Return True if the exception looks like a missing-table / missing-schema error."""
    if missing_table_name(exc):
        return True

    # Fallback for drivers that don't format errors consistently.
    for e in _unwrap_exception_chain(exc):
        message = str(e).lower()
        if "undefinedtableerror" in message:
            return True
        if "does not exist" in message and "relation" in message:
            return True
    return False


def schema_not_initialized_message(exc: BaseException) -> str:
    table = missing_table_name(exc)
    table_hint = f" (missing table `{table}`)" if table else ""

    lines: list[str] = [
        f"Database schema is not initialized{table_hint}.",
        "Run: `citetrack init-db`",
        "Or apply migrations with: `alembic upgrade head`",
    ]
    return "\n".join(lines)


def storage_error_message(exc: BaseException) -> str:
    return f"Database operation failed: {exc.__class__.__name__}: {exc}"
