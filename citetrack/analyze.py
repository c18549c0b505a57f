"""
Query analysis: ask the answer engine, categorize its citations, record the run.

Batches are processed strictly one query at a time with a fixed pause between
answer-engine calls; a failure on one query is reported in its result entry and
the batch moves on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any, Generic, Protocol, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from . import db
from .categorize import CategorizedCitation, categorize_citations, count_owned
from .config import settings
from .costs import MODEL_PRICING, ModelPricing, estimate_cost
from .errors import NotFoundError, UpstreamError, ValidationError
from .perplexity_client import AnswerResult

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class AnswerEngine(Protocol):
    async def ask(self, *, model: str, prompt: str, timeout: float | None = None) -> AnswerResult: ...


@dataclass
class AnalysisResult:
    query: str
    response_text: str
    citations: list[CategorizedCitation]
    model: str
    cost_estimate: float
    query_id: int | None = None
    run_id: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def citation_count(self) -> int:
        return len(self.citations)

    @property
    def owned_citation_count(self) -> int:
        return count_owned(self.citations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "query_id": self.query_id,
            "query": self.query,
            "response_text": self.response_text,
            "citations": [c.to_dict() for c in self.citations],
            "citation_count": self.citation_count,
            "owned_citation_count": self.owned_citation_count,
            "model": self.model,
            "cost_estimate": self.cost_estimate,
        }


async def analyze_query(
    session: AsyncSession,
    engine: AnswerEngine,
    *,
    query_id: int | None = None,
    query_text: str | None = None,
    model: str | None = None,
    timeout: float | None = None,
    pricing: Mapping[str, ModelPricing] = MODEL_PRICING,
) -> AnalysisResult:
    """Analyze one query.

    With ``query_id`` the stored query text and its client's owned domains are
    used and a run is recorded. Without it, ``query_text`` is analyzed ad hoc
    and nothing is persisted.
    """
    model = model or settings.default_model
    owned_domains: list[str] = []

    if query_id is not None:
        query = await db.get_query(session, query_id)
        if query is None:
            raise NotFoundError(f"Query not found: {query_id}")
        prompt = query_text.strip() if query_text and query_text.strip() else query.query_text
        owned_domains = await db.owned_domains_for_query(session, query_id) or []
    else:
        if not query_text or not query_text.strip():
            raise ValidationError("Query is required")
        prompt = query_text.strip()

    answer = await engine.ask(model=model, prompt=prompt, timeout=timeout)
    cost = estimate_cost(model, 1, pricing)
    citations = await categorize_citations(session, answer.citations, owned_domains)

    run_id: int | None = None
    if query_id is not None:
        run = await db.record_run(
            session,
            query_id=query_id,
            raw_response=answer.raw,
            response_text=answer.text,
            model=model,
            citations=citations,
            cost_estimate=cost,
        )
        run_id = run.id

    return AnalysisResult(
        query=prompt,
        response_text=answer.text,
        citations=citations,
        model=model,
        cost_estimate=cost,
        query_id=query_id,
        run_id=run_id,
        raw=answer.raw,
    )


# =============================================================================
# Batch analysis
# =============================================================================


class BatchState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    WAITING = "waiting"
    FINISHED = "finished"
    FAILED = "failed"


class SequentialBatch(Generic[T, R]):
    """Run ``process`` over ``items`` one at a time with a fixed pause between items.

    The pause is skipped after the last item. Items are never processed concurrently.
    """

    def __init__(
        self,
        items: Sequence[T],
        process: Callable[[T], Awaitable[R]],
        *,
        delay_seconds: float,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.items = list(items)
        self.process = process
        self.delay_seconds = delay_seconds
        self.sleep = sleep
        self.state = BatchState.PENDING
        self.results: list[R] = []

    @property
    def remaining(self) -> int:
        return len(self.items) - len(self.results)

    async def __aiter__(self) -> AsyncIterator[R]:
        if self.state is not BatchState.PENDING:
            raise RuntimeError(f"Batch already {self.state}")

        last_index = len(self.items) - 1
        try:
            for index, item in enumerate(self.items):
                self.state = BatchState.RUNNING
                result = await self.process(item)
                self.results.append(result)
                yield result

                if index < last_index:
                    self.state = BatchState.WAITING
                    logger.debug("Waiting %.2fs before next batch item", self.delay_seconds)
                    await self.sleep(self.delay_seconds)
        except BaseException:
            self.state = BatchState.FAILED
            raise
        self.state = BatchState.FINISHED

    async def run(self) -> list[R]:
        async for _ in self:
            pass
        return self.results


@dataclass
class BatchItemResult:
    query_id: int
    query: str | None = None
    run_id: int | None = None
    citation_count: int = 0
    owned_citation_count: int = 0
    cost_estimate: float = 0.0
    citations: list[CategorizedCitation] = field(default_factory=list)
    error: str | None = None
    status_code: int | None = None
    details: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.ok:
            for key in ("error", "status_code", "details"):
                data.pop(key)
        return data


@dataclass
class BatchResult:
    results: list[BatchItemResult]

    @property
    def total_cost(self) -> float:
        return round(sum(r.cost_estimate for r in self.results), 6)

    @property
    def failed(self) -> list[BatchItemResult]:
        return [r for r in self.results if not r.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "total_cost": self.total_cost,
        }


async def analyze_batch(
    engine: AnswerEngine,
    query_ids: Sequence[int],
    *,
    model: str | None = None,
    timeout: float | None = None,
    delay_seconds: float | None = None,
    pricing: Mapping[str, ModelPricing] = MODEL_PRICING,
    session_scope: SessionScope | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    on_result: Callable[[BatchItemResult], None] | None = None,
) -> BatchResult:
    """Analyze stored queries sequentially, one unit of work per query.

    Missing queries and answer-engine failures are reported per item; any
    other error aborts the batch (runs already recorded stay committed).
    """
    if not query_ids:
        raise ValidationError("queryIds list is required")

    model = model or settings.default_model
    scope = session_scope or db.get_session
    delay = settings.batch_delay_seconds if delay_seconds is None else delay_seconds

    async def process(query_id: int) -> BatchItemResult:
        async with scope() as session:
            query = await db.get_query(session, query_id)
            if query is None:
                logger.warning("Batch: query %s not found", query_id)
                return BatchItemResult(query_id=query_id, error="Query not found")

            try:
                result = await analyze_query(
                    session,
                    engine,
                    query_id=query_id,
                    model=model,
                    timeout=timeout,
                    pricing=pricing,
                )
            except UpstreamError as exc:
                logger.warning("Batch: query %s failed upstream: %s", query_id, exc.message)
                return BatchItemResult(
                    query_id=query_id,
                    query=query.query_text,
                    error=exc.message,
                    status_code=exc.status_code,
                    details=exc.body,
                )
            except NotFoundError as exc:
                return BatchItemResult(query_id=query_id, query=query.query_text, error=exc.message)

        return BatchItemResult(
            query_id=query_id,
            query=result.query,
            run_id=result.run_id,
            citation_count=result.citation_count,
            owned_citation_count=result.owned_citation_count,
            cost_estimate=result.cost_estimate,
            citations=result.citations,
        )

    batch: SequentialBatch[int, BatchItemResult] = SequentialBatch(
        query_ids, process, delay_seconds=delay, sleep=sleep
    )
    async for item in batch:
        if on_result is not None:
            on_result(item)

    return BatchResult(results=batch.results)
