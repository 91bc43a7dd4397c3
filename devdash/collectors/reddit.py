import re

from devdash.collectors.base import (
    BaseCollector,
    CandidateRecord,
    from_timestamp,
    matches_keywords,
    truncate,
)
from devdash.errors import InvalidRequest

_BASE_URL = "https://www.reddit.com/r/{subreddit}/{sort}.json"
_SUBREDDIT_RE = re.compile(r"reddit\.com/r/([^/?#]+)", re.IGNORECASE)
_IMAGE_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)
_SUMMARY_LEN = 1000


def extract_subreddit(url: str | None) -> str | None:
    match = _SUBREDDIT_RE.search(url or "")
    return match.group(1) if match else None


def _content_type_tag(item: dict) -> str | None:
    link = item.get("url") or ""
    if item.get("is_self"):
        return "text-post"
    if "youtube.com" in link or "youtu.be" in link:
        return "video"
    if _IMAGE_RE.search(link):
        return "image"
    if "github.com" in link:
        return "github"
    return None


class RedditCollector(BaseCollector):
    """Submissions of one subreddit via the public JSON listing (no OAuth)."""

    source_type = "reddit"
    default_max_items = 25

    @property
    def subreddit(self) -> str | None:
        return extract_subreddit(self.source.url)

    async def fetch(self) -> list[dict]:
        subreddit = self.subreddit
        if not subreddit:
            raise InvalidRequest("invalid subreddit URL")

        sort = self.config.get("sort") or "hot"
        limit = self.source.config_int("limit", self.max_items)
        url = _BASE_URL.format(subreddit=subreddit, sort=sort)

        async with self.client() as client:
            data = await self.get_json(client, url, params={"limit": limit})
        if not isinstance(data, dict):
            return []
        return (data.get("data") or {}).get("children") or []

    def parse(self, payload: list[dict]) -> list[CandidateRecord]:
        subreddit = self.subreddit or ""
        keywords = self.source.config_list("keywords")
        records: list[CandidateRecord] = []

        for child in payload:
            item = child.get("data") if isinstance(child, dict) else None
            if not item or item.get("stickied"):
                continue
            post_id = item.get("id")
            title = item.get("title")
            if not post_id or not title:
                continue
            # Link posts without a link or text carry nothing to show
            if item.get("is_self") is False and not item.get("url") and not item.get("selftext"):
                continue

            content = item.get("selftext") or item.get("url") or ""
            if keywords and not matches_keywords(f"{title} {content}", keywords):
                continue

            tags = [f"subreddit:{item.get('subreddit') or subreddit}", "reddit"]
            if item.get("link_flair_text"):
                tags.append(item["link_flair_text"])
            content_tag = _content_type_tag(item)
            if content_tag:
                tags.append(content_tag)

            permalink = item.get("permalink") or ""
            records.append(
                CandidateRecord(
                    external_id=str(post_id),
                    title=title,
                    url=f"https://www.reddit.com{permalink}" if permalink else item.get("url") or "",
                    author=item.get("author") or "unknown",
                    posted_at=from_timestamp(item.get("created_utc")),
                    summary=truncate(content, _SUMMARY_LEN),
                    tags=tags,
                    raw_metrics={
                        "score": float(item.get("score") or 0),
                        "comments": float(item.get("num_comments") or 0),
                    },
                )
            )
        return records
