"""Shared test fixtures and configuration for pytest."""

from collections.abc import AsyncGenerator, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from citetrack import db
from citetrack.categorize import CategorizedCitation
from citetrack.domains import extract_domain
from citetrack.models import Run
from citetrack.perplexity_client import AnswerResult


class FakeAnswerEngine:
    """Answer engine double keyed by prompt text."""

    def __init__(self) -> None:
        self.answers: dict[str, AnswerResult | Exception] = {}
        self.calls: list[dict[str, object]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def reply(self, prompt: str, citations: list[str], text: str = "answer") -> None:
        self.answers[prompt] = AnswerResult(
            text=text,
            citations=citations,
            raw={"choices": [{"message": {"content": text}}], "citations": citations},
        )

    def fail(self, prompt: str, exc: Exception) -> None:
        self.answers[prompt] = exc

    async def ask(self, *, model: str, prompt: str, timeout: float | None = None) -> AnswerResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.calls.append({"model": model, "prompt": prompt, "timeout": timeout})
            outcome = self.answers.get(prompt)
            if outcome is None:
                return AnswerResult(text="", citations=[], raw={})
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1


@pytest_asyncio.fixture
async def engine(monkeypatch: pytest.MonkeyPatch) -> AsyncGenerator[AsyncEngine]:
    """In-memory SQLite database with schema and system tags, wired into citetrack.db."""
    test_engine = db.create_engine_for(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    monkeypatch.setattr(db, "engine", test_engine)
    monkeypatch.setattr(
        db, "async_session_factory", async_sessionmaker(test_engine, expire_on_commit=False)
    )
    await db.init_db()
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    async with db.get_session() as s:
        yield s


@pytest.fixture
def answer_engine() -> FakeAnswerEngine:
    return FakeAnswerEngine()


@pytest.fixture
def make_run():
    """Record a run whose citations are given as (url, category) pairs."""

    async def _make_run(
        session: AsyncSession,
        query_id: int,
        citations: Sequence[tuple[str, str]],
        *,
        cost_estimate: float = 0.0007,
    ) -> Run:
        categorized = [
            CategorizedCitation(url=url, domain=extract_domain(url), position=i, category=category)
            for i, (url, category) in enumerate(citations, start=1)
        ]
        return await db.record_run(
            session,
            query_id=query_id,
            raw_response={"citations": [url for url, _ in citations]},
            response_text="answer",
            model="sonar",
            citations=categorized,
            cost_estimate=cost_estimate,
        )

    return _make_run
