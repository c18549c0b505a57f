"""Async database connection and operations for the citation tracker."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from sqlalchemy import delete, event, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import selectinload

from .categorize import CategorizedCitation, count_owned
from .config import settings
from .domains import normalize_domains
from .errors import (
    NotFoundError,
    SchemaNotInitializedError,
    StorageError,
    ValidationError,
    is_schema_missing_error,
    schema_not_initialized_message,
    storage_error_message,
)
from .models import Base, Category, Citation, Client, DomainTag, Query, Run

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

TOP_DOMAINS_LIMIT = 15


def create_engine_for(url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine; SQLite connections get foreign keys enabled."""
    engine_ = create_async_engine(url, **kwargs)
    if engine_.dialect.name == "sqlite":

        @event.listens_for(engine_.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine_


# Create async engine and session factory
engine = create_engine_for(settings.async_database_url, echo=settings.db_echo, pool_pre_ping=True)
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


def _ensure_sqlite_directory(url: str) -> None:
    parsed = make_url(url)
    if not parsed.get_backend_name() == "sqlite":
        return
    database = parsed.database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


async def init_db() -> int:
    """Create all tables and load the system domain tags.

    Returns the number of seed tags inserted (0 when already seeded).
    """
    from .tags import seed_domain_tags

    _ensure_sqlite_directory(str(engine.url))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with get_session() as session:
        inserted = await seed_domain_tags(session)
    logger.info("Database initialized at %s (%d seed tags inserted)", engine.url, inserted)
    return inserted


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession]:
    """Async context manager for one unit of work.

    Commits on success; rolls back on any error so multi-row writes are atomic.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            await session.rollback()
            if isinstance(exc, SQLAlchemyError):
                if is_schema_missing_error(exc):
                    raise SchemaNotInitializedError(
                        schema_not_initialized_message(exc)
                    ) from exc
                raise StorageError(storage_error_message(exc)) from exc
            raise


def dialect_insert(session: AsyncSession, model: type[Base]) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT clauses."""
    bind = session.get_bind()
    name = bind.dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise StorageError(f"Unsupported database dialect for upserts: {name}")
    return insert(model)


async def _require(session: AsyncSession, model: type[ModelT], id_: int, label: str) -> ModelT:
    instance = await session.get(model, id_)
    if instance is None:
        raise NotFoundError(f"{label} not found: {id_}")
    return instance


# =============================================================================
# Client Operations
# =============================================================================


async def create_client(
    session: AsyncSession,
    name: str,
    owned_domains: Sequence[str] | None = None,
) -> Client:
    """Create a client. Owned domains are lowercased and ``www.``-stripped."""
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationError("Client name is required")

    client = Client(name=clean_name, owned_domains=normalize_domains(list(owned_domains or [])))
    session.add(client)
    await session.flush()
    await session.refresh(client)
    return client


async def list_clients(session: AsyncSession) -> list[Client]:
    result = await session.execute(select(Client).order_by(Client.created_at.desc(), Client.id.desc()))
    return list(result.scalars().all())


async def get_client(session: AsyncSession, client_id: int) -> Client | None:
    """Get a client by its ID."""
    return await session.get(Client, client_id)


async def update_client(
    session: AsyncSession,
    client_id: int,
    *,
    name: str | None = None,
    owned_domains: Sequence[str] | None = None,
) -> Client:
    """Update name and/or owned domains.

    Past citations keep their categories; only tag changes recategorize history.
    """
    client = await _require(session, Client, client_id, "Client")

    if name is not None and name.strip():
        client.name = name.strip()
    if owned_domains is not None:
        client.owned_domains = normalize_domains(list(owned_domains))

    await session.flush()
    await session.refresh(client)
    return client


async def delete_client(session: AsyncSession, client_id: int) -> None:
    """Delete a client and, through FK cascades, its queries, runs and citations."""
    result = await session.execute(delete(Client).where(Client.id == client_id))
    if result.rowcount == 0:
        raise NotFoundError(f"Client not found: {client_id}")


# =============================================================================
# Query Operations
# =============================================================================


@dataclass
class QuerySummary:
    query: Query
    run_count: int
    last_run: datetime | None


async def get_query(session: AsyncSession, query_id: int) -> Query | None:
    return await session.get(Query, query_id)


async def list_queries(session: AsyncSession, client_id: int) -> list[QuerySummary]:
    """Queries for a client with their run count and latest run time."""
    await _require(session, Client, client_id, "Client")

    result = await session.execute(
        select(Query, func.count(Run.id), func.max(Run.created_at))
        .outerjoin(Run, Run.query_id == Query.id)
        .where(Query.client_id == client_id)
        .group_by(Query.id)
        .order_by(Query.created_at.desc(), Query.id.desc())
    )
    return [
        QuerySummary(query=query, run_count=int(run_count or 0), last_run=last_run)
        for query, run_count, last_run in result.all()
    ]


async def add_queries(session: AsyncSession, client_id: int, texts: Sequence[str]) -> list[Query]:
    """Add queries in bulk. Blank entries are skipped; all-blank input is rejected."""
    if not texts:
        raise ValidationError("Queries list is required")

    cleaned = [text.strip() for text in texts if text and text.strip()]
    if not cleaned:
        raise ValidationError("No valid queries provided (all were empty)")

    await _require(session, Client, client_id, "Client")

    queries = [Query(client_id=client_id, query_text=text) for text in cleaned]
    session.add_all(queries)
    await session.flush()
    for query in queries:
        await session.refresh(query)
    return queries


async def set_query_active(session: AsyncSession, query_id: int, active: bool) -> Query:
    query = await _require(session, Query, query_id, "Query")
    query.is_active = active
    await session.flush()
    return query


async def delete_query(session: AsyncSession, query_id: int) -> None:
    """Delete a query and, through FK cascades, its runs and citations."""
    result = await session.execute(delete(Query).where(Query.id == query_id))
    if result.rowcount == 0:
        raise NotFoundError(f"Query not found: {query_id}")


async def active_query_ids(session: AsyncSession, client_id: int) -> list[int]:
    await _require(session, Client, client_id, "Client")
    result = await session.execute(
        select(Query.id)
        .where(Query.client_id == client_id, Query.is_active.is_(True))
        .order_by(Query.created_at, Query.id)
    )
    return list(result.scalars().all())


async def owned_domains_for_query(session: AsyncSession, query_id: int) -> list[str] | None:
    """Owned domains of the query's client, or None if the query does not exist."""
    result = await session.execute(
        select(Client.owned_domains).join(Query, Query.client_id == Client.id).where(Query.id == query_id)
    )
    row = result.first()
    if row is None:
        return None
    return list(row[0] or [])


# =============================================================================
# Run Operations
# =============================================================================


async def record_run(
    session: AsyncSession,
    *,
    query_id: int,
    raw_response: dict[str, Any] | str | None,
    response_text: str,
    model: str,
    citations: Sequence[CategorizedCitation],
    cost_estimate: float,
) -> Run:
    """Insert a run and all of its citations in the current transaction.

    Citation positions must already be 1..N in list order; they are not re-sorted.
    """
    for expected, citation in enumerate(citations, start=1):
        if citation.position != expected:
            raise ValidationError(
                f"Citation positions must be 1..N in order; got {citation.position} at index {expected}"
            )

    raw = raw_response if isinstance(raw_response, str) or raw_response is None else json.dumps(raw_response)

    run = Run(
        query_id=query_id,
        raw_response=raw,
        response_text=response_text,
        model=model,
        cost_estimate=cost_estimate,
        citation_count=len(citations),
        owned_citation_count=count_owned(citations),
    )
    run.citations = [
        Citation(url=c.url, domain=c.domain, position=c.position, category=c.category)
        for c in citations
    ]
    session.add(run)
    await session.flush()
    await session.refresh(run, ["created_at"])

    logger.info(
        "Recorded run %s for query %s (%d citations, %d owned)",
        run.id,
        query_id,
        run.citation_count,
        run.owned_citation_count,
    )
    return run


async def get_run(session: AsyncSession, run_id: int) -> Run | None:
    return await session.get(Run, run_id)


async def list_runs(session: AsyncSession, query_id: int) -> list[Run]:
    """Runs for a query, newest first."""
    await _require(session, Query, query_id, "Query")
    result = await session.execute(
        select(Run).where(Run.query_id == query_id).order_by(Run.created_at.desc(), Run.id.desc())
    )
    return list(result.scalars().all())


async def list_citations(session: AsyncSession, run_id: int) -> list[Citation]:
    """Citations for a run in their original order."""
    await _require(session, Run, run_id, "Run")
    result = await session.execute(
        select(Citation).where(Citation.run_id == run_id).order_by(Citation.position)
    )
    return list(result.scalars().all())


# =============================================================================
# History & Stats
# =============================================================================


@dataclass
class HistoryEntry:
    run: Run
    query_text: str
    citations: list[Citation]


@dataclass
class ClientStats:
    total_runs: int = 0
    total_citations: int = 0
    total_owned_citations: int = 0
    total_cost: float = 0.0
    avg_citations_per_run: float = 0.0
    category_breakdown: list[dict[str, Any]] = field(default_factory=list)
    top_domains: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_runs": self.total_runs,
            "total_citations": self.total_citations,
            "total_owned_citations": self.total_owned_citations,
            "total_cost": self.total_cost,
            "avg_citations_per_run": self.avg_citations_per_run,
            "category_breakdown": list(self.category_breakdown),
            "top_domains": list(self.top_domains),
        }


async def get_client_history(session: AsyncSession, client_id: int) -> list[HistoryEntry]:
    """Every run for a client, newest first, with query text and ordered citations."""
    await _require(session, Client, client_id, "Client")
    result = await session.execute(
        select(Run, Query.query_text)
        .join(Query, Query.id == Run.query_id)
        .where(Query.client_id == client_id)
        .options(selectinload(Run.citations))
        .order_by(Run.created_at.desc(), Run.id.desc())
    )
    return [
        HistoryEntry(run=run, query_text=query_text, citations=list(run.citations))
        for run, query_text in result.all()
    ]


async def get_client_stats(session: AsyncSession, client_id: int) -> ClientStats:
    """Aggregate run and citation statistics for a client.

    ``total_owned_citations`` sums each run's creation-time snapshot, while
    ``category_breakdown`` reflects current (possibly retroactively updated) categories.
    """
    await _require(session, Client, client_id, "Client")

    totals_row = (
        await session.execute(
            select(
                func.count(func.distinct(Run.id)),
                func.coalesce(func.sum(Run.citation_count), 0),
                func.coalesce(func.sum(Run.owned_citation_count), 0),
                func.coalesce(func.sum(Run.cost_estimate), 0),
                func.coalesce(func.avg(Run.citation_count), 0),
            )
            .join(Query, Query.id == Run.query_id)
            .where(Query.client_id == client_id)
        )
    ).one()

    client_citations = (
        select(Citation.domain, Citation.category)
        .join(Run, Run.id == Citation.run_id)
        .join(Query, Query.id == Run.query_id)
        .where(Query.client_id == client_id)
        .subquery()
    )

    breakdown_rows = (
        await session.execute(
            select(client_citations.c.category, func.count().label("count"))
            .group_by(client_citations.c.category)
            .order_by(func.count().desc(), client_citations.c.category)
        )
    ).all()

    domain_rows = (
        await session.execute(
            select(client_citations.c.domain, client_citations.c.category, func.count())
            .group_by(client_citations.c.domain, client_citations.c.category)
        )
    ).all()

    return ClientStats(
        total_runs=int(totals_row[0] or 0),
        total_citations=int(totals_row[1] or 0),
        total_owned_citations=int(totals_row[2] or 0),
        total_cost=round(float(totals_row[3] or 0), 6),
        avg_citations_per_run=round(float(totals_row[4] or 0), 1),
        category_breakdown=[{"category": category, "count": int(count)} for category, count in breakdown_rows],
        top_domains=_top_domains(domain_rows, TOP_DOMAINS_LIMIT),
    )


def _top_domains(rows: Sequence[Any], limit: int) -> list[dict[str, Any]]:
    """Fold (domain, category, count) rows into per-domain totals.

    A domain's reported category is its most frequent one.
    """
    totals: dict[str, int] = {}
    by_category: dict[str, dict[str, int]] = {}
    for domain, category, count in rows:
        totals[domain] = totals.get(domain, 0) + int(count)
        by_category.setdefault(domain, {})[category] = int(count)

    ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))[:limit]
    top: list[dict[str, Any]] = []
    for domain, count in ranked:
        categories = by_category[domain]
        category = max(sorted(categories), key=lambda c: categories[c])
        top.append({"domain": domain, "category": category, "count": count})
    return top


async def health_counts(session: AsyncSession) -> dict[str, int]:
    clients = (await session.execute(select(func.count(Client.id)))).scalar_one()
    tags = (await session.execute(select(func.count(DomainTag.id)))).scalar_one()
    unknown = (
        await session.execute(select(func.count(Citation.id)).where(Citation.category == Category.UNKNOWN.value))
    ).scalar_one()
    return {"clients": int(clients), "domain_tags": int(tags), "unknown_citations": int(unknown)}
