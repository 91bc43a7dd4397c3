from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from devdash.models import Post, PostStatus, Source
from devdash.retention import prune_old_posts
from devdash.storage import (
    DuplicatePostError,
    DuplicateSourceError,
    NotFoundError,
    SupabaseStore,
)

NOW = datetime(2025, 7, 12, 12, 0, tzinfo=timezone.utc)


def _make_post(external_id: str = "1", posted_at: datetime = NOW, source: str = "Acme") -> Post:
    return Post(
        source=source,
        external_id=external_id,
        title="Title",
        url="https://example.com",
        author="someone",
        posted_at=posted_at,
    )


@pytest.mark.asyncio
async def test_duplicate_source_url_case_insensitive(store):
    await store.add_source(Source(name="A", source_type="rss", url="https://Example.com/feed"))

    with pytest.raises(DuplicateSourceError):
        await store.add_source(Source(name="B", source_type="rss", url="https://example.com/FEED"))


@pytest.mark.asyncio
async def test_invalid_source_rejected(store):
    with pytest.raises(ValueError):
        await store.add_source(Source(name="  ", source_type="rss", url="https://example.com/feed"))
    assert await store.list_sources() == []


@pytest.mark.asyncio
async def test_list_sources_filters(store):
    await store.add_source(Source(name="A", source_type="rss", url="https://a.example.com"))
    await store.add_source(Source(name="B", source_type="rss", url="https://b.example.com", active=False))
    await store.add_source(
        Source(name="C", source_type="rss", url="https://c.example.com", auto_fetch_enabled=False)
    )

    assert [s.name for s in await store.list_sources(active=True)] == ["A", "C"]
    assert [s.name for s in await store.list_sources(active=True, auto_fetch_enabled=True)] == ["A"]


@pytest.mark.asyncio
async def test_post_key_is_unique(store):
    await store.add_post(_make_post("1"))

    with pytest.raises(DuplicatePostError):
        await store.add_post(_make_post("1"))
    await store.add_post(_make_post("1", source="Other"))


@pytest.mark.asyncio
async def test_update_missing_post_raises(store):
    with pytest.raises(NotFoundError):
        await store.update_post_status("nope", PostStatus.READ)


@pytest.mark.asyncio
async def test_prune_old_posts(store):
    await store.add_post(_make_post("old", posted_at=NOW - timedelta(days=45)))
    await store.add_post(_make_post("new", posted_at=NOW - timedelta(days=2)))

    deleted = await prune_old_posts(store, retention_days=30, now=NOW)

    assert deleted == 1
    assert [p.external_id for p in await store.list_posts()] == ["new"]
    # The key is released with the post
    assert await store.find_post("Acme", "old") is None


@pytest.mark.asyncio
async def test_supabase_store_maps_unique_violation():
    client = MagicMock()
    error = Exception("duplicate key value violates unique constraint")
    error.code = "23505"
    client.table.return_value.insert.return_value.execute.side_effect = error

    with pytest.raises(DuplicatePostError):
        await SupabaseStore(client).add_post(_make_post())


@pytest.mark.asyncio
async def test_supabase_store_find_post_reads_row():
    client = MagicMock()
    row = {
        "id": "p1",
        "source": "Acme",
        "external_id": "1",
        "title": "Title",
        "url": "https://example.com",
        "author": "someone",
        "summary": "",
        "tags": '["bug"]',
        "posted_at": NOW.isoformat(),
        "priority_score": 2.0,
        "status": "read",
        "created_at": NOW.isoformat(),
    }
    query = client.table.return_value.select.return_value
    query.eq.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[row])

    post = await SupabaseStore(client).find_post("Acme", "1")

    client.table.assert_called_with("posts")
    assert post.tags == ["bug"]
    assert post.status == PostStatus.READ
    assert post.posted_at == NOW


@pytest.mark.asyncio
async def test_supabase_duplicate_check_matches_url_exactly():
    client = MagicMock()
    query = client.table.return_value.select.return_value
    query.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[])
    source = Source(name="Foo bar", source_type="github", url="https://GitHub.com/Foo_Bar/x")

    await SupabaseStore(client).add_source(source)

    # An underscore must not act as a pattern wildcard
    query.eq.assert_called_once_with("url_key", "https://github.com/foo_bar/x")
    query.ilike.assert_not_called()
    client.table.return_value.insert.assert_called_once()


@pytest.mark.asyncio
async def test_supabase_duplicate_url_raises():
    client = MagicMock()
    query = client.table.return_value.select.return_value
    query.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[{"id": "s1"}])

    with pytest.raises(DuplicateSourceError):
        await SupabaseStore(client).add_source(
            Source(name="Rails", source_type="github", url="https://github.com/rails/rails")
        )
    client.table.return_value.insert.assert_not_called()
