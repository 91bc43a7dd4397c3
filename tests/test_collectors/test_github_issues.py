import httpx
import pytest

from devdash.collectors.github_issues import (
    GitHubIssuesCollector,
    count_reactions,
    parse_repo_url,
)
from devdash.errors import InvalidRequest, NetworkError, NotFound, RateLimited
from devdash.models import Source


def _make_collector(url: str = "https://github.com/acme/widget", config: dict | None = None):
    source = Source(name="Acme Widget", source_type="github", url=url, config=config or {})
    return GitHubIssuesCollector(source)


@pytest.mark.asyncio
async def test_collect_maps_fields_correctly(http_client, mock_response, fixture_data):
    http_client.get.return_value = mock_response(fixture_data("github_issues_response.json"))

    records = await _make_collector().collect()

    first = records[0]
    assert first.external_id == "4242"
    assert first.title == "Crash when parsing empty config file"
    assert first.url == "https://github.com/acme/widget/issues/4242"
    assert first.author == "octocat"
    assert first.tags == ["bug", "good first issue"]
    assert first.raw_metrics == {"comments": 4.0, "reactions": 3.0}
    assert first.posted_at is not None and first.posted_at.year == 2025


@pytest.mark.asyncio
async def test_pull_requests_are_dropped(http_client, mock_response, fixture_data):
    http_client.get.return_value = mock_response(fixture_data("github_issues_response.json"))

    records = await _make_collector().collect()

    assert [r.external_id for r in records] == ["4242", "4243"]


@pytest.mark.asyncio
async def test_missing_body_and_labels_default_to_empty(http_client, mock_response, fixture_data):
    http_client.get.return_value = mock_response(fixture_data("github_issues_response.json"))

    records = await _make_collector().collect()

    second = records[1]
    assert second.summary == ""
    assert second.tags == []
    assert second.raw_metrics["reactions"] == 0.0


@pytest.mark.asyncio
async def test_request_uses_repo_endpoint_and_label_filter(http_client, mock_response):
    http_client.get.return_value = mock_response([])

    await _make_collector(config={"labels": ["bug", "help wanted"], "max_items": 10}).collect()

    url = http_client.get.call_args.args[0]
    params = http_client.get.call_args.kwargs["params"]
    assert url == "https://api.github.com/repos/acme/widget/issues"
    assert params["labels"] == "bug,help wanted"
    assert params["per_page"] == 10
    assert params["state"] == "open"


@pytest.mark.asyncio
async def test_token_from_config_sent_as_authorization(http_client, mock_response):
    http_client.get.return_value = mock_response([])

    await _make_collector(config={"token": "ghp_secret"}).collect()

    headers = http_client.client_class.call_args.kwargs["headers"]
    assert headers["Authorization"] == "Bearer ghp_secret"
    assert headers["User-Agent"] == "DevDashboard/1.0"


@pytest.mark.asyncio
async def test_rate_limited_403_raises_with_token_hint(http_client, mock_response):
    http_client.get.return_value = mock_response(
        {}, status_code=403, text='{"message": "API rate limit exceeded for 1.2.3.4."}'
    )

    with pytest.raises(RateLimited) as excinfo:
        await _make_collector().collect()

    assert excinfo.value.detail == "HTTP 403 - Rate limit exceeded. Add a GitHub token."


@pytest.mark.asyncio
async def test_missing_repository_raises_not_found(http_client, mock_response):
    http_client.get.return_value = mock_response({}, status_code=404, text="Not Found")

    with pytest.raises(NotFound):
        await _make_collector().collect()


@pytest.mark.asyncio
async def test_connection_failure_raises_network_error(http_client):
    http_client.get.side_effect = httpx.ConnectError("Name or service not known")

    with pytest.raises(NetworkError) as excinfo:
        await _make_collector().collect()

    assert "Name or service not known" in excinfo.value.detail


@pytest.mark.asyncio
async def test_invalid_repo_url_raises_before_any_request(http_client):
    with pytest.raises(InvalidRequest):
        await _make_collector(url="https://gitlab.com/acme/widget").collect()

    http_client.get.assert_not_called()


def test_parse_repo_url_variants():
    assert parse_repo_url("https://github.com/rails/rails") == ("rails", "rails")
    assert parse_repo_url("https://github.com/rails/rails.git") == ("rails", "rails")
    assert parse_repo_url("https://github.com/rails/rails/issues") == ("rails", "rails")
    assert parse_repo_url("https://github.com/rails") is None
    assert parse_repo_url(None) is None


def test_count_reactions_prefers_total_count():
    assert count_reactions({"url": "x", "+1": 2, "heart": 1, "total_count": 3}) == 3
    assert count_reactions({"url": "x", "+1": 2, "heart": 1, "laugh": True}) == 3
    assert count_reactions(None) == 0
