"""
First-write-wins persistence of scored records.

A post is identified by (source name, external_id). Existing posts are never
touched by later fetches; only unseen items are inserted, as ``unread``.
"""

from dataclasses import dataclass, field
from datetime import datetime

from devdash.models import Post, PostStatus, Source, utcnow
from devdash.scoring import ScoredRecord
from devdash.storage import BaseStore, DuplicatePostError
from devdash.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class IngestResult:
    created: list[Post] = field(default_factory=list)
    skipped_count: int = 0

    @property
    def created_count(self) -> int:
        return len(self.created)


def build_post(scored: ScoredRecord, source: Source, fetched_at: datetime) -> Post:
    record = scored.record
    return Post(
        source=source.name,
        external_id=record.external_id,
        title=record.title,
        url=record.url,
        author=record.author,
        posted_at=record.posted_at or fetched_at,
        summary=record.summary,
        tags=list(record.tags),
        priority_score=scored.score,
        status=PostStatus.UNREAD,
    )


async def is_new(store: BaseStore, source: Source, external_id: str) -> bool:
    return await store.find_post(source.name, external_id) is None


async def ingest(
    scored_records: list[ScoredRecord],
    source: Source,
    store: BaseStore,
    fetched_at: datetime | None = None,
) -> IngestResult:
    """Persist records not yet stored for this source; count the rest as skipped."""
    fetched_at = fetched_at or utcnow()
    result = IngestResult()

    for scored in scored_records:
        external_id = scored.record.external_id
        if not await is_new(store, source, external_id):
            result.skipped_count += 1
            continue

        try:
            post = await store.add_post(build_post(scored, source, fetched_at))
        except DuplicatePostError:
            # Lost a race with another insert of the same item
            logger.info("post_insert_conflict", source=source.name, external_id=external_id)
            result.skipped_count += 1
            continue

        result.created.append(post)

    logger.info(
        "ingest_complete",
        source=source.name,
        created=result.created_count,
        skipped=result.skipped_count,
    )
    return result
