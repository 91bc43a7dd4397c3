"""source_type -> collector class. A type missing here is reported as unsupported."""

from devdash.collectors.base import BaseCollector
from devdash.collectors.discourse import DiscourseCollector
from devdash.collectors.github_issues import GitHubIssuesCollector
from devdash.collectors.github_trending import GitHubTrendingCollector
from devdash.collectors.hackernews import HackerNewsCollector
from devdash.collectors.reddit import RedditCollector
from devdash.collectors.rss import RssCollector

COLLECTORS: dict[str, type[BaseCollector]] = {
    cls.source_type: cls
    for cls in (
        GitHubIssuesCollector,
        GitHubTrendingCollector,
        RedditCollector,
        DiscourseCollector,
        RssCollector,
        HackerNewsCollector,
    )
}


def get_collector_class(source_type: str) -> type[BaseCollector] | None:
    return COLLECTORS.get(source_type)
