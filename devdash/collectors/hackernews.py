from devdash.collectors.base import (
    BaseCollector,
    CandidateRecord,
    from_timestamp,
    matches_keywords,
    strip_html,
    truncate,
)

_SEARCH_URL = "https://hn.algolia.com/api/v1/search"
_SEARCH_BY_DATE_URL = "https://hn.algolia.com/api/v1/search_by_date"
_ITEM_URL = "https://news.ycombinator.com/item?id={id}"

# story type -> (endpoint, Algolia tag filter)
_STORY_TYPES: dict[str, tuple[str, str]] = {
    "top": (_SEARCH_URL, "front_page"),
    "new": (_SEARCH_BY_DATE_URL, "story"),
    "ask": (_SEARCH_BY_DATE_URL, "ask_hn"),
    "show": (_SEARCH_BY_DATE_URL, "show_hn"),
}

_LANGUAGES = ["javascript", "python", "ruby", "java", "golang", "rust", "php", "swift"]
_FRAMEWORKS = ["react", "vue", "angular", "rails", "django", "express", "spring"]
_SUMMARY_LEN = 300


def title_tags(title: str, story_type: str) -> list[str]:
    lowered = title.lower()
    tags = [story_type]
    tags.extend(lang for lang in _LANGUAGES if lang in lowered)
    tags.extend(fw for fw in _FRAMEWORKS if fw in lowered)
    if lowered.startswith("ask hn"):
        tags.append("ask")
    if lowered.startswith("show hn"):
        tags.append("show")
    if "release" in lowered or "version" in lowered:
        tags.append("release")
    if "tutorial" in lowered or "guide" in lowered:
        tags.append("tutorial")
    return list(dict.fromkeys(tags))


class HackerNewsCollector(BaseCollector):
    """Hacker News stories via the Algolia search API, one request per story type."""

    source_type = "hacker_news"

    @property
    def story_types(self) -> list[str]:
        types = [t for t in self.source.config_list("story_types") if t in _STORY_TYPES]
        return types or ["top"]

    async def fetch(self) -> dict[str, list[dict]]:
        story_types = self.story_types
        per_type = max(self.max_items // len(story_types), 1)

        hits: dict[str, list[dict]] = {}
        async with self.client() as client:
            for story_type in story_types:
                url, tag = _STORY_TYPES[story_type]
                data = await self.get_json(client, url, params={"tags": tag, "hitsPerPage": per_type})
                hits[story_type] = (data.get("hits") or []) if isinstance(data, dict) else []
        return hits

    def parse(self, payload: dict[str, list[dict]]) -> list[CandidateRecord]:
        min_score = self.source.config_int("min_score", 10)
        keywords = self.source.config_list("keywords")
        seen_ids: set[str] = set()
        records: list[CandidateRecord] = []

        for story_type, hits in payload.items():
            for hit in hits:
                oid = str(hit.get("objectID") or "")
                if not oid or oid in seen_ids:
                    continue
                title = hit.get("title") or ""
                if not title:
                    continue
                points = hit.get("points") or 0
                if points < min_score:
                    continue
                text = strip_html(hit.get("story_text"))
                if keywords and not matches_keywords(f"{title} {text}", keywords):
                    continue

                seen_ids.add(oid)
                comments = hit.get("num_comments") or 0
                summary = truncate(text, _SUMMARY_LEN) or f"{title} ({points} points, {comments} comments)"
                records.append(
                    CandidateRecord(
                        external_id=oid,
                        title=title,
                        url=hit.get("url") or _ITEM_URL.format(id=oid),
                        author=hit.get("author") or "unknown",
                        posted_at=from_timestamp(hit.get("created_at_i")),
                        summary=summary,
                        tags=title_tags(title, story_type),
                        raw_metrics={"points": float(points), "comments": float(comments)},
                        extras={"story_type": story_type},
                    )
                )
        return records
