import hashlib
from datetime import datetime, timezone
from typing import Any

import feedparser

from devdash.collectors.base import (
    BaseCollector,
    CandidateRecord,
    matches_keywords,
    strip_html,
    truncate,
)
from devdash.errors import UnknownError

_TITLE_LEN = 200
_AUTHOR_LEN = 100
_SUMMARY_LEN = 500
_MAX_TAGS = 10


def _entry_datetime(entry: Any) -> datetime | None:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue
    return None


def _entry_summary(entry: Any) -> str:
    text = entry.get("summary") or ""
    if not text:
        contents = entry.get("content") or []
        if contents:
            text = contents[0].get("value") or ""
    return truncate(strip_html(text), _SUMMARY_LEN)


def _entry_tags(entry: Any) -> list[str]:
    terms = [(tag.get("term") or "").strip() for tag in entry.get("tags") or []]
    return list(dict.fromkeys(t for t in terms if t))[:_MAX_TAGS]


def _entry_id(entry: Any) -> str:
    entry_id = entry.get("id") or entry.get("link")
    if entry_id:
        return entry_id
    digest_input = f"{entry.get('title') or ''}{entry.get('link') or ''}"
    return hashlib.md5(digest_input.encode("utf-8")).hexdigest()


class RssCollector(BaseCollector):
    """Generic RSS/Atom feed."""

    source_type = "rss"
    default_max_items = 20

    async def fetch(self) -> Any:
        async with self.client() as client:
            response = await self.get(client, self.source.url)

        feed = feedparser.parse(response.content)
        if feed.bozo and not feed.entries:
            raise UnknownError("Invalid RSS feed format")
        return feed

    def parse(self, payload: Any) -> list[CandidateRecord]:
        keywords = self.source.config_list("keywords")
        records: list[CandidateRecord] = []

        for entry in (payload.get("entries") or [])[: self.max_items]:
            raw_title = entry.get("title") or ""
            raw_summary = entry.get("summary") or ""
            if keywords and not matches_keywords(f"{raw_title} {raw_summary}", keywords):
                continue

            title = truncate(strip_html(raw_title), _TITLE_LEN) or "Untitled"
            author = truncate((entry.get("author") or "").strip(), _AUTHOR_LEN) or "Unknown"

            records.append(
                CandidateRecord(
                    external_id=_entry_id(entry),
                    title=title,
                    url=entry.get("link") or "",
                    author=author,
                    posted_at=_entry_datetime(entry),
                    summary=_entry_summary(entry),
                    tags=_entry_tags(entry),
                )
            )
        return records
