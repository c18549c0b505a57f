"""Citation categorization.

Resolution order for a normalized domain (first match wins):

1. owned: the domain equals one of the client's owned domains or is a
   subdomain of one. Ownership overrides every stored tag.
2. exact tag on the domain.
3. tag on the parent domain (see :func:`citetrack.domains.parent_domain`).
4. ``unknown``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .domains import extract_domain, normalize_domain, parent_domain
from .models import Category, DomainTag


@dataclass(frozen=True)
class CategorizedCitation:
    url: str
    domain: str
    position: int
    category: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def is_owned(domain: str, owned_domains: Iterable[str]) -> bool:
    for owned in owned_domains:
        owned_clean = normalize_domain(owned)
        if not owned_clean:
            continue
        # Exact and subdomain checks stay separate: "notowned.com" must not match "owned.com".
        if domain == owned_clean or domain.endswith("." + owned_clean):
            return True
    return False


def resolve_category(
    domain: str,
    owned_domains: Iterable[str],
    tags: Mapping[str, str],
) -> str:
    """Return the category for ``domain`` given a read-only snapshot of domain tags."""
    if is_owned(domain, owned_domains):
        return Category.OWNED.value

    exact = tags.get(domain)
    if exact is not None:
        return exact

    parent = parent_domain(domain)
    if parent != domain:
        parent_category = tags.get(parent)
        if parent_category is not None:
            return parent_category

    return Category.UNKNOWN.value


def lookup_keys(domains: Iterable[str]) -> set[str]:
    """Every tag key the resolver may consult for ``domains``."""
    keys: set[str] = set()
    for domain in domains:
        keys.add(domain)
        keys.add(parent_domain(domain))
    return keys


async def load_tag_snapshot(session: AsyncSession, domains: Iterable[str]) -> dict[str, str]:
    """Fetch the tags relevant to ``domains`` in a single query."""
    keys = lookup_keys(domains)
    if not keys:
        return {}
    result = await session.execute(
        select(DomainTag.domain, DomainTag.category).where(DomainTag.domain.in_(keys))
    )
    return {domain: category for domain, category in result.all()}


async def categorize_domain(
    session: AsyncSession,
    domain: str,
    owned_domains: Iterable[str] = (),
) -> str:
    tags = await load_tag_snapshot(session, [domain])
    return resolve_category(domain, owned_domains, tags)


async def categorize_citations(
    session: AsyncSession,
    urls: list[str],
    owned_domains: Iterable[str] = (),
) -> list[CategorizedCitation]:
    """Normalize and categorize citation URLs, keeping their original order."""
    owned = list(owned_domains)
    domains = [extract_domain(url) for url in urls]
    tags = await load_tag_snapshot(session, domains)

    return [
        CategorizedCitation(
            url=url,
            domain=domain,
            position=index,
            category=resolve_category(domain, owned, tags),
        )
        for index, (url, domain) in enumerate(zip(urls, domains, strict=True), start=1)
    ]


def count_owned(citations: Iterable[CategorizedCitation]) -> int:
    return sum(1 for c in citations if c.category == Category.OWNED)
