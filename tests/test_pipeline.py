"""
End-to-end pipeline tests: real collectors and store, upstream HTTP mocked.
"""

from datetime import datetime, timezone

import httpx
import pytest

from devdash.collectors.rss import RssCollector
from devdash.models import Source
from devdash.pipeline import fetch_source, refresh_all
from devdash.status import REFRESHING
from devdash.storage import StorageError

NOW = datetime(2025, 7, 12, 12, 0, tzinfo=timezone.utc)


async def _add(store, **kwargs) -> Source:
    kwargs.setdefault("name", "Dev Weekly")
    kwargs.setdefault("source_type", "rss")
    kwargs.setdefault("url", "https://devweekly.example.com/feed.xml")
    return await store.add_source(Source(**kwargs))


@pytest.fixture
def feed_response(mock_response, fixture_data):
    return mock_response(content=fixture_data("feed.xml").encode())


@pytest.mark.asyncio
async def test_successful_fetch_stores_posts_and_reports_ok(store, notifier, status_events, http_client, feed_response):
    http_client.get.return_value = feed_response
    source = await _add(store)

    summary = await fetch_source(source, store, notifier, now=NOW)

    assert summary.collected == 3
    assert summary.new == 3
    assert summary.status == "ok (3 new)"
    stored = await store.get_source(source.id)
    assert stored.status == "ok (3 new)"
    assert stored.last_fetched_at == NOW
    assert [e.new_status for e in status_events] == [REFRESHING, "ok (3 new)"]


@pytest.mark.asyncio
async def test_refetch_is_idempotent(store, notifier, http_client, feed_response):
    http_client.get.return_value = feed_response
    source = await _add(store)

    await fetch_source(source, store, notifier)
    summary = await fetch_source(source, store, notifier)

    assert summary.new == 0
    assert summary.skipped == 3
    assert summary.status == "ok"
    assert len(await store.list_posts()) == 3


@pytest.mark.asyncio
async def test_keyword_filter_limits_created_posts(store, notifier, http_client, feed_response):
    http_client.get.return_value = feed_response
    source = await _add(store, config={"keywords": ["rails", "ruby"]})

    summary = await fetch_source(source, store, notifier)

    posts = await store.list_posts(source="Dev Weekly")
    assert len(posts) == 2
    assert summary.status == "ok (2 new)"


@pytest.mark.asyncio
async def test_auto_fetch_disabled_is_a_no_op(store, notifier, status_events, http_client):
    source = await _add(store, auto_fetch_enabled=False, status="ok")

    summary = await fetch_source(source, store, notifier)

    assert summary.status is None
    assert (await store.get_source(source.id)).status == "ok"
    assert status_events == []
    http_client.get.assert_not_called()


@pytest.mark.asyncio
async def test_unsupported_source_type(store, notifier, status_events, http_client):
    source = await _add(store, source_type="mailing_list", url="https://lists.example.com/dev")

    summary = await fetch_source(source, store, notifier)

    assert summary.status == "error: unsupported source type"
    assert (await store.get_source(source.id)).status == "error: unsupported source type"
    assert [e.new_status for e in status_events] == ["error: unsupported source type"]
    assert await store.list_posts() == []
    http_client.get.assert_not_called()


@pytest.mark.asyncio
async def test_github_rate_limit_reports_guidance(store, notifier, http_client, mock_response):
    http_client.get.return_value = mock_response(
        {}, status_code=403, text='{"message": "API rate limit exceeded"}'
    )
    source = await _add(store, name="Rails", source_type="github", url="https://github.com/rails/rails")

    summary = await fetch_source(source, store, notifier, now=NOW)

    assert summary.status.startswith("error: HTTP 403")
    assert "Add a GitHub token." in summary.status
    stored = await store.get_source(source.id)
    assert stored.last_fetched_at is None
    assert await store.list_posts() == []


@pytest.mark.asyncio
async def test_unexpected_parse_failure_reported_as_error(store, notifier, http_client, feed_response, monkeypatch):
    http_client.get.return_value = feed_response

    def _explode(self, payload):
        raise KeyError("entries")

    monkeypatch.setattr(RssCollector, "parse", _explode)
    source = await _add(store)

    summary = await fetch_source(source, store, notifier)

    assert summary.status.startswith("error: ")
    assert await store.list_posts() == []


@pytest.mark.asyncio
async def test_refresh_all_isolates_failures(store, notifier, status_events, http_client, feed_response):
    async def _get(url, params=None):
        if "reddit.com" in url:
            raise httpx.ConnectError("connection refused")
        return feed_response

    http_client.get.side_effect = _get
    rss = await _add(store)
    other_rss = await _add(store, name="Ruby Weekly", url="https://rubyweekly.example.com/feed.xml")
    reddit = await _add(store, name="r/ruby", source_type="reddit", url="https://www.reddit.com/r/ruby")
    await _add(store, name="Paused", url="https://paused.example.com/feed", active=False)

    summaries = await refresh_all(store, notifier)

    by_id = {s.source_id: s for s in summaries}
    assert len(summaries) == 3
    assert by_id[rss.id].status == "ok (3 new)"
    assert by_id[other_rss.id].status == "ok (3 new)"
    assert by_id[reddit.id].status == "error: Network error: connection refused"
    assert (await store.get_source(reddit.id)).status == "error: Network error: connection refused"
    # refreshing + final status for each active source
    assert len(status_events) == 6


@pytest.mark.asyncio
async def test_refresh_all_auto_fetch_only_skips_manual_sources(store, notifier, http_client, feed_response):
    http_client.get.return_value = feed_response
    await _add(store)
    await _add(store, name="Manual", url="https://manual.example.com/feed", auto_fetch_enabled=False)

    summaries = await refresh_all(store, notifier, auto_fetch_only=True)

    assert [s.source for s in summaries] == ["Dev Weekly"]


@pytest.mark.asyncio
async def test_refresh_all_without_sources(store, notifier):
    assert await refresh_all(store, notifier) == []


@pytest.mark.asyncio
async def test_store_failure_does_not_escape(store, notifier, http_client, monkeypatch):
    source = await _add(store)

    async def _db_down(source):
        raise StorageError("db down")

    monkeypatch.setattr(store, "save_source_status", _db_down)

    summary = await fetch_source(source, store, notifier)

    assert summary.status == "error: db down"
    http_client.get.assert_not_called()


@pytest.mark.asyncio
async def test_failure_saving_final_status_is_logged_not_raised(
    store, notifier, status_events, http_client, feed_response, monkeypatch
):
    http_client.get.return_value = feed_response
    source = await _add(store)
    save = store.save_source_status
    calls = []

    async def _fail_after_refreshing(source):
        calls.append(source.status)
        if len(calls) > 1:
            raise StorageError("db down")
        await save(source)

    monkeypatch.setattr(store, "save_source_status", _fail_after_refreshing)

    summary = await fetch_source(source, store, notifier)

    assert summary.status == "ok (3 new)"
    assert calls == [REFRESHING, "ok (3 new)"]
    assert [e.new_status for e in status_events] == [REFRESHING]
