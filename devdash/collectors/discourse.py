import re

from devdash.collectors.base import BaseCollector, CandidateRecord, parse_iso, strip_html

_VIEW_POST_RE = re.compile(r"\s*View Post\s*$")
_PYTORCH_MARKER = "pytorch"


def clean_excerpt(excerpt: str | None) -> str:
    text = strip_html(excerpt)
    return _VIEW_POST_RE.sub("", text)


def _topic_tags(topic: dict) -> list[str]:
    # Newer Discourse versions send tag objects instead of names
    tags = []
    for tag in topic.get("tags") or []:
        name = tag.get("name") if isinstance(tag, dict) else tag
        if name:
            tags.append(str(name))
    return tags


class DiscourseCollector(BaseCollector):
    """Latest topics of a Discourse forum (HuggingFace, PyTorch, ...)."""

    source_type = "discourse"

    @property
    def base_url(self) -> str:
        return (self.source.url or "").rstrip("/")

    @property
    def highlights_unanswered(self) -> bool:
        """PyTorch forums surface questions nobody has answered yet."""
        return _PYTORCH_MARKER in (self.source.url or "").lower() or _PYTORCH_MARKER in self.source.name.lower()

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        headers["Accept"] = "application/json"
        # Private forums authenticate with an API key header pair
        if self.config.get("api_key"):
            headers["Api-Key"] = self.config["api_key"]
            headers["Api-Username"] = self.config.get("api_username") or "system"
        return headers

    async def fetch(self) -> list[dict]:
        async with self.client() as client:
            data = await self.get_json(client, f"{self.base_url}/latest.json", params={"page": 0})
        if not isinstance(data, dict):
            return []
        return (data.get("topic_list") or {}).get("topics") or []

    def parse(self, payload: list[dict]) -> list[CandidateRecord]:
        highlight_unanswered = self.highlights_unanswered
        records: list[CandidateRecord] = []
        for topic in payload[: self.max_items]:
            if not isinstance(topic, dict) or topic.get("id") is None:
                continue
            topic_id = topic["id"]
            slug = topic.get("slug") or f"topic-{topic_id}"
            title = topic.get("title") or ""

            posters = topic.get("posters") or []
            first_poster = ((posters[0] or {}).get("user") or {}).get("username") if posters else None

            records.append(
                CandidateRecord(
                    external_id=str(topic_id),
                    title=title,
                    url=f"{self.base_url}/t/{slug}/{topic_id}",
                    author=topic.get("last_poster_username") or first_poster or "unknown",
                    posted_at=parse_iso(topic.get("created_at")),
                    summary=clean_excerpt(topic.get("excerpt")),
                    tags=_topic_tags(topic),
                    raw_metrics={
                        "replies": float(topic.get("reply_count") or 0),
                        "likes": float(topic.get("like_count") or 0),
                        "views": float(topic.get("views") or 0),
                    },
                    extras={
                        "pinned": bool(topic.get("pinned")),
                        "unanswered_question": highlight_unanswered
                        and not topic.get("reply_count")
                        and "?" in title,
                    },
                )
            )
        return records
