"""
Fetch → Parse → Score → Dedup → Report pipeline.

Each source is fetched independently; failures in one don't affect others.
"""

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime

from devdash.collectors.registry import get_collector_class
from devdash.config import settings
from devdash.dedup import ingest
from devdash.errors import ErrorKind, FetchError
from devdash.models import Source, utcnow
from devdash.notifier import StatusNotifier
from devdash.scoring import score_all
from devdash.status import (
    Error,
    Outcome,
    Success,
    Unsupported,
    mark_refreshing,
    report,
    status_message,
)
from devdash.storage import BaseStore
from devdash.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class FetchSummary:
    source_id: str
    source: str
    collected: int = 0
    new: int = 0
    skipped: int = 0
    status: str | None = None   # None when the fetch was a no-op


async def _report(
    source: Source,
    outcome: Outcome,
    store: BaseStore,
    notifier: StatusNotifier,
    now: datetime | None = None,
) -> str:
    """report() that logs store/notifier failures instead of raising them."""
    try:
        return await report(source, outcome, store, notifier, now=now)
    except Exception:
        logger.exception("status_report_failed", source=source.name)
        return status_message(outcome)


async def fetch_source(
    source: Source,
    store: BaseStore,
    notifier: StatusNotifier,
    now: datetime | None = None,
) -> FetchSummary:
    """
    Run the full pipeline for a single source.

    Disabled auto-fetch is a silent no-op. Every other path ends with the
    source status set to ``ok...`` or ``error: ...``; nothing is raised.
    """
    summary = FetchSummary(source_id=source.id, source=source.name)

    if not source.auto_fetch_enabled:
        logger.info("fetch_skipped_auto_fetch_disabled", source=source.name)
        return summary

    collector_cls = get_collector_class(source.source_type)
    if collector_cls is None:
        summary.status = await _report(source, Unsupported(), store, notifier, now=now)
        return summary

    try:
        await mark_refreshing(source, store, notifier)
        logger.info("fetch_started", source=source.name, source_type=source.source_type)

        collector = collector_cls(source)
        payload = await collector.fetch()
        records = collector.parse(payload)
        fetched_at = now or utcnow()
        scored = score_all(records, source.source_type, source.config, now=fetched_at)
        result = await ingest(scored, source, store, fetched_at=fetched_at)
    except FetchError as exc:
        logger.warning("fetch_failed", source=source.name, kind=exc.kind.value, error=exc.detail)
        summary.status = await _report(source, Error(exc.kind, exc.detail), store, notifier, now=now)
        return summary
    except Exception as exc:
        logger.exception("fetch_failed_unexpectedly", source=source.name)
        summary.status = await _report(source, Error(ErrorKind.UNKNOWN, str(exc)), store, notifier, now=now)
        return summary

    summary.collected = len(records)
    summary.new = result.created_count
    summary.skipped = result.skipped_count
    summary.status = await _report(source, Success(result.created_count), store, notifier, now=fetched_at)

    logger.info("fetch_complete", **asdict(summary))
    return summary


async def refresh_all(
    store: BaseStore,
    notifier: StatusNotifier,
    auto_fetch_only: bool = False,
    now: datetime | None = None,
) -> list[FetchSummary]:
    """Fetch every active source concurrently and return all summaries."""
    sources = await store.list_sources(
        active=True, auto_fetch_enabled=True if auto_fetch_only else None
    )
    if not sources:
        logger.warning("no_active_sources")
        return []

    semaphore = asyncio.Semaphore(max(settings.max_concurrent_fetches, 1))

    async def _run(source: Source) -> FetchSummary:
        async with semaphore:
            return await fetch_source(source, store, notifier, now=now)

    results = await asyncio.gather(*(_run(s) for s in sources), return_exceptions=True)

    summaries: list[FetchSummary] = []
    for source, result in zip(sources, results):
        if isinstance(result, BaseException):
            # fetch_source never raises; this guards the semaphore and task plumbing
            logger.error("refresh_source_failed", source=source.name, error=str(result))
            summaries.append(FetchSummary(source_id=source.id, source=source.name))
            continue
        summaries.append(result)

    logger.info("refresh_all_complete", sources=len(sources))
    return summaries
