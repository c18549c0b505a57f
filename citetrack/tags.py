"""Domain tag store and retroactive recategorization.

A tag is a standing domain -> category rule. Adding or correcting a tag
rewrites every stored citation that is still ``unknown`` on that domain or
one of its subdomains, so history heals without re-running queries.
Citations that already carry another category are never touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .db import dialect_insert
from .domains import normalize_domain
from .errors import ForbiddenError, NotFoundError, ValidationError
from .models import Category, Citation, DomainTag, Query, Run, TagSource
from .seeds import SEED_DOMAINS
from .suggest import suggest_category

logger = logging.getLogger(__name__)

VALID_CATEGORIES: frozenset[str] = frozenset(c.value for c in Category)


@dataclass
class TagUpdate:
    tag: DomainTag
    retroactive_updates: int


@dataclass
class UnknownDomain:
    domain: str
    count: int
    sample_url: str
    suggestion: str | None


def _validate_category(category: str) -> str:
    value = (category or "").strip().lower()
    if not value:
        raise ValidationError("Domain and category are required")
    if value not in VALID_CATEGORIES:
        raise ValidationError(
            f"Unknown category: {category!r} (expected one of {', '.join(sorted(VALID_CATEGORIES))})"
        )
    return value


async def get_domain_tag(session: AsyncSession, domain: str) -> DomainTag | None:
    result = await session.execute(select(DomainTag).where(DomainTag.domain == normalize_domain(domain)))
    return result.scalar_one_or_none()


async def list_domain_tags(session: AsyncSession, category: str | None = None) -> list[DomainTag]:
    query = select(DomainTag).order_by(DomainTag.category, DomainTag.domain)
    if category:
        query = query.where(DomainTag.category == category)
    result = await session.execute(query)
    return list(result.scalars().all())


async def upsert_domain_tag(
    session: AsyncSession,
    domain: str,
    category: str,
    source: str = TagSource.USER,
) -> DomainTag:
    """Insert a tag or update the category/source of the existing tag for the domain."""
    clean_domain = normalize_domain(domain or "")
    if not clean_domain:
        raise ValidationError("Domain and category are required")
    clean_category = _validate_category(category)
    clean_source = TagSource(source).value

    stmt = dialect_insert(session, DomainTag).values(
        domain=clean_domain, category=clean_category, source=clean_source
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[DomainTag.domain],
        set_={"category": clean_category, "source": clean_source},
    )
    await session.execute(stmt)

    result = await session.execute(
        select(DomainTag)
        .where(DomainTag.domain == clean_domain)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def recategorize_unknown_citations(session: AsyncSession, domain: str, category: str) -> int:
    """Rewrite ``unknown`` citations on ``domain`` or its subdomains. Returns rows changed."""
    clean_domain = normalize_domain(domain)
    if not clean_domain or category == Category.UNKNOWN:
        return 0

    result = await session.execute(
        update(Citation)
        .where(
            Citation.category == Category.UNKNOWN.value,
            or_(
                Citation.domain == clean_domain,
                Citation.domain.endswith("." + clean_domain, autoescape=True),
            ),
        )
        .values(category=category)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


async def add_domain_tag(
    session: AsyncSession,
    domain: str,
    category: str,
    source: str = TagSource.USER,
) -> TagUpdate:
    """Upsert a tag and retroactively apply it, as one unit of work."""
    tag = await upsert_domain_tag(session, domain, category, source)
    changed = await recategorize_unknown_citations(session, tag.domain, tag.category)
    logger.info("Tagged %s as %s (%d citations recategorized)", tag.domain, tag.category, changed)
    return TagUpdate(tag=tag, retroactive_updates=changed)


async def delete_domain_tag(session: AsyncSession, tag_id: int) -> None:
    """Delete a user tag. System tags are protected."""
    tag = await session.get(DomainTag, tag_id)
    if tag is None:
        raise NotFoundError(f"Tag not found: {tag_id}")
    if tag.source == TagSource.SYSTEM:
        raise ForbiddenError("Cannot delete system tags")

    await session.delete(tag)
    await session.flush()


async def seed_domain_tags(session: AsyncSession) -> int:
    """Insert the system seed tags that are not present yet. Returns rows inserted."""
    before = (await session.execute(select(func.count(DomainTag.id)))).scalar_one()
    stmt = dialect_insert(session, DomainTag).values(
        [
            {"domain": domain, "category": category, "source": TagSource.SYSTEM.value}
            for domain, category in SEED_DOMAINS
        ]
    )
    await session.execute(stmt.on_conflict_do_nothing(index_elements=[DomainTag.domain]))
    after = (await session.execute(select(func.count(DomainTag.id)))).scalar_one()

    inserted = int(after) - int(before)
    if inserted:
        logger.info("Seeded %d system domain tags", inserted)
    return inserted


async def list_unknown_domains(
    session: AsyncSession,
    client_id: int | None = None,
    limit: int = 20,
) -> list[UnknownDomain]:
    """Most-cited domains still categorized ``unknown``, with a category hint."""
    query = (
        select(Citation.domain, func.count(Citation.id), func.min(Citation.url))
        .where(Citation.category == Category.UNKNOWN.value)
        .group_by(Citation.domain)
        .order_by(func.count(Citation.id).desc(), Citation.domain)
        .limit(limit)
    )
    if client_id is not None:
        query = (
            query.join(Run, Run.id == Citation.run_id)
            .join(Query, Query.id == Run.query_id)
            .where(Query.client_id == client_id)
        )

    result = await session.execute(query)
    return [
        UnknownDomain(
            domain=domain,
            count=int(count),
            sample_url=sample_url,
            suggestion=suggest_category(domain, sample_url),
        )
        for domain, count, sample_url in result.all()
    ]
