import pytest

from devdash.collectors.hackernews import HackerNewsCollector, title_tags
from devdash.models import Source


def _make_collector(config: dict | None = None):
    source = Source(
        name="Hacker News",
        source_type="hacker_news",
        url="https://news.ycombinator.com",
        config=config or {},
    )
    return HackerNewsCollector(source)


@pytest.mark.asyncio
async def test_collect_maps_fields_correctly(http_client, mock_response, fixture_data):
    http_client.get.return_value = mock_response(fixture_data("hackernews_front_page.json"))

    records = await _make_collector().collect()

    first = records[0]
    assert first.external_id == "40000001"
    assert first.url == "https://example.com/rust-for-pythonistas"
    assert first.author == "pg_fan"
    assert first.summary == "Show HN: A Rust tutorial for Python developers (320 points, 85 comments)"
    assert first.tags == ["top", "python", "rust", "show", "tutorial"]
    assert first.raw_metrics == {"points": 320.0, "comments": 85.0}


@pytest.mark.asyncio
async def test_text_post_links_to_item_page(http_client, mock_response, fixture_data):
    http_client.get.return_value = mock_response(fixture_data("hackernews_front_page.json"))

    records = await _make_collector().collect()

    ask = next(r for r in records if r.external_id == "40000002")
    assert ask.url == "https://news.ycombinator.com/item?id=40000002"
    assert ask.summary == "Tell us about your side project."
    assert "ask" in ask.tags


@pytest.mark.asyncio
async def test_low_score_stories_filtered(http_client, mock_response, fixture_data):
    http_client.get.return_value = mock_response(fixture_data("hackernews_front_page.json"))

    records = await _make_collector().collect()
    assert "40000003" not in [r.external_id for r in records]

    records = await _make_collector({"min_score": 0}).collect()
    assert "40000003" in [r.external_id for r in records]


@pytest.mark.asyncio
async def test_multiple_story_types_deduplicate(http_client, mock_response, fixture_data):
    http_client.get.return_value = mock_response(fixture_data("hackernews_front_page.json"))

    records = await _make_collector({"story_types": ["top", "ask"], "max_items": 20}).collect()

    assert http_client.get.call_count == 2
    assert http_client.get.call_args.kwargs["params"] == {"tags": "ask_hn", "hitsPerPage": 10}
    assert sorted(r.external_id for r in records) == ["40000001", "40000002"]


@pytest.mark.asyncio
async def test_keyword_filter(http_client, mock_response, fixture_data):
    http_client.get.return_value = mock_response(fixture_data("hackernews_front_page.json"))

    records = await _make_collector({"keywords": ["side project"]}).collect()

    assert [r.external_id for r in records] == ["40000002"]


def test_title_tags_release():
    assert title_tags("Django 5.0 release notes", "new") == ["new", "django", "release"]


@pytest.mark.asyncio
async def test_story_text_entities_are_decoded(http_client, mock_response):
    hit = {
        "objectID": "40000009",
        "title": "Ask HN: Is it worth it?",
        "author": "curious",
        "points": 50,
        "num_comments": 4,
        "story_text": "It&#x27;s <i>great</i> &amp; fast &gt; slow",
    }
    http_client.get.return_value = mock_response({"hits": [hit]})

    records = await _make_collector().collect()

    assert records[0].summary == "It's great & fast > slow"
    assert records[0].extras == {"story_type": "top"}
