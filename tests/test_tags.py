import pytest
from sqlalchemy import func, select

from citetrack import db
from citetrack.errors import ForbiddenError, NotFoundError, ValidationError
from citetrack.models import Citation, DomainTag, TagSource
from citetrack.seeds import SEED_DOMAINS
from citetrack.tags import (
    add_domain_tag,
    delete_domain_tag,
    get_domain_tag,
    list_domain_tags,
    list_unknown_domains,
    recategorize_unknown_citations,
    seed_domain_tags,
    upsert_domain_tag,
)


async def _query_id(session, owned: list[str] | None = None) -> int:
    client = await db.create_client(session, "Acme", owned or [])
    (query,) = await db.add_queries(session, client.id, ["best wallets"])
    return query.id


async def _categories(session) -> dict[str, str]:
    result = await session.execute(select(Citation.url, Citation.category))
    return dict(result.all())


@pytest.mark.asyncio
async def test_seed_is_idempotent(session) -> None:
    assert await seed_domain_tags(session) == 0
    count = (await session.execute(select(func.count(DomainTag.id)))).scalar_one()
    assert count == len(SEED_DOMAINS)


@pytest.mark.asyncio
async def test_upsert_inserts_then_updates_without_duplicates(session) -> None:
    first = await upsert_domain_tag(session, "WWW.Example.com", "blog")
    second = await upsert_domain_tag(session, "example.com", "news")

    assert first.id == second.id
    assert second.domain == "example.com"
    assert second.category == "news"
    assert second.source == TagSource.USER
    rows = (await session.execute(select(DomainTag).where(DomainTag.domain == "example.com"))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_user_upsert_over_system_tag_takes_ownership(session) -> None:
    tag = await upsert_domain_tag(session, "medium.com", "blog")
    assert tag.category == "blog"
    assert tag.source == TagSource.USER


@pytest.mark.asyncio
async def test_upsert_validates_before_writing(session) -> None:
    with pytest.raises(ValidationError):
        await upsert_domain_tag(session, "   ", "news")
    with pytest.raises(ValidationError):
        await upsert_domain_tag(session, "example.com", "")
    with pytest.raises(ValidationError):
        await upsert_domain_tag(session, "example.com", "podcast")
    assert await get_domain_tag(session, "example.com") is None


@pytest.mark.asyncio
async def test_upsert_accepts_url_as_domain(session) -> None:
    tag = await upsert_domain_tag(session, "https://www.Some-Site.io/path", "news")
    assert tag.domain == "some-site.io"


@pytest.mark.asyncio
async def test_retroactive_update_rewrites_unknown_exact_and_subdomains(session, make_run) -> None:
    query_id = await _query_id(session)
    await make_run(
        session,
        query_id,
        [
            ("https://example.com/a", "unknown"),
            ("https://blog.example.com/b", "unknown"),
            ("https://example.com/c", "social"),
            ("https://notexample.com/d", "unknown"),
        ],
    )

    update = await add_domain_tag(session, "example.com", "news")

    assert update.retroactive_updates == 2
    assert update.tag.domain == "example.com"
    assert await _categories(session) == {
        "https://example.com/a": "news",
        "https://blog.example.com/b": "news",
        "https://example.com/c": "social",
        "https://notexample.com/d": "unknown",
    }


@pytest.mark.asyncio
async def test_retroactive_update_is_idempotent(session, make_run) -> None:
    query_id = await _query_id(session)
    await make_run(session, query_id, [("https://site.io/a", "unknown"), ("https://x.site.io/b", "unknown")])

    assert (await add_domain_tag(session, "site.io", "blog")).retroactive_updates == 2
    before = await _categories(session)

    assert await recategorize_unknown_citations(session, "site.io", "blog") == 0
    assert (await add_domain_tag(session, "site.io", "blog")).retroactive_updates == 0
    assert await _categories(session) == before


@pytest.mark.asyncio
async def test_correcting_a_tag_does_not_overwrite_applied_categories(session, make_run) -> None:
    query_id = await _query_id(session)
    await make_run(session, query_id, [("https://site.io/a", "unknown")])

    await add_domain_tag(session, "site.io", "blog")
    update = await add_domain_tag(session, "site.io", "news")

    assert update.retroactive_updates == 0
    assert update.tag.category == "news"
    assert await _categories(session) == {"https://site.io/a": "blog"}


@pytest.mark.asyncio
async def test_unknown_category_tag_changes_nothing(session, make_run) -> None:
    query_id = await _query_id(session)
    await make_run(session, query_id, [("https://site.io/a", "unknown")])

    update = await add_domain_tag(session, "site.io", "unknown")
    assert update.retroactive_updates == 0


@pytest.mark.asyncio
async def test_like_wildcards_in_domain_are_escaped(session, make_run) -> None:
    query_id = await _query_id(session)
    await make_run(session, query_id, [("https://a.abc.com/x", "unknown")])

    assert await recategorize_unknown_citations(session, "_bc.com", "news") == 0


@pytest.mark.asyncio
async def test_tag_and_retroactive_update_roll_back_together(engine, make_run) -> None:
    async with db.get_session() as session:
        query_id = await _query_id(session)
        await make_run(session, query_id, [("https://site.io/a", "unknown")])

    with pytest.raises(RuntimeError):
        async with db.get_session() as session:
            update = await add_domain_tag(session, "site.io", "news")
            assert update.retroactive_updates == 1
            raise RuntimeError("boom")

    async with db.get_session() as session:
        assert await get_domain_tag(session, "site.io") is None
        assert await _categories(session) == {"https://site.io/a": "unknown"}


@pytest.mark.asyncio
async def test_delete_system_tag_is_forbidden(session) -> None:
    tag = await get_domain_tag(session, "coindesk.com")
    assert tag is not None and tag.source == TagSource.SYSTEM

    with pytest.raises(ForbiddenError):
        await delete_domain_tag(session, tag.id)
    assert await get_domain_tag(session, "coindesk.com") is not None


@pytest.mark.asyncio
async def test_delete_missing_tag_is_not_found(session) -> None:
    with pytest.raises(NotFoundError):
        await delete_domain_tag(session, 999_999)


@pytest.mark.asyncio
async def test_delete_user_tag(session) -> None:
    tag = await upsert_domain_tag(session, "mine.dev", "developer")
    await delete_domain_tag(session, tag.id)
    assert await get_domain_tag(session, "mine.dev") is None


@pytest.mark.asyncio
async def test_list_domain_tags_ordered_by_category_then_domain(session) -> None:
    tags = await list_domain_tags(session)
    keys = [(t.category, t.domain) for t in tags]
    assert keys == sorted(keys)

    video = await list_domain_tags(session, "video")
    assert {t.domain for t in video} == {"youtube.com", "youtu.be", "vimeo.com", "twitch.tv"}


@pytest.mark.asyncio
async def test_list_unknown_domains_with_suggestions(session, make_run) -> None:
    query_id = await _query_id(session)
    await make_run(
        session,
        query_id,
        [
            ("https://cryptonewsdaily.io/a", "unknown"),
            ("https://cryptonewsdaily.io/b", "unknown"),
            ("https://random.site/blog/post", "unknown"),
            ("https://coindesk.com/x", "news"),
        ],
    )

    rows = await list_unknown_domains(session)

    assert [(r.domain, r.count, r.suggestion) for r in rows] == [
        ("cryptonewsdaily.io", 2, "news"),
        ("random.site", 1, "blog"),
    ]


@pytest.mark.asyncio
async def test_list_unknown_domains_filters_by_client(session, make_run) -> None:
    first = await _query_id(session)
    other_client = await db.create_client(session, "Other")
    (other_query,) = await db.add_queries(session, other_client.id, ["q"])
    await make_run(session, first, [("https://a.site/x", "unknown")])
    await make_run(session, other_query.id, [("https://b.site/x", "unknown")])

    rows = await list_unknown_domains(session, client_id=other_client.id)
    assert [r.domain for r in rows] == ["b.site"]
