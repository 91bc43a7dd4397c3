"""
APScheduler wiring.

One interval job refreshes every active, auto-fetch-enabled source; another
prunes old posts. The scheduler is started/stopped as part of the FastAPI
lifespan.

CLI usage (refresh all active sources once, print results, exit):
    python -m devdash.scheduler --run-now
"""

import asyncio
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from devdash.config import settings
from devdash.notifier import get_notifier
from devdash.pipeline import refresh_all
from devdash.retention import prune_old_posts
from devdash.storage import get_store
from devdash.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def refresh_job() -> None:
    await refresh_all(get_store(), get_notifier(), auto_fetch_only=True)


async def cleanup_job() -> None:
    await prune_old_posts(get_store(), settings.post_retention_days)


def create_scheduler() -> AsyncIOScheduler:
    """Create and configure the APScheduler instance (not yet started)."""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        refresh_job,
        "interval",
        minutes=settings.poll_interval_minutes,
        id="refresh_sources",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        cleanup_job,
        "interval",
        hours=settings.cleanup_interval_hours,
        id="cleanup_old_posts",
        max_instances=1,
        coalesce=True,
    )

    return scheduler


# --------------------------------------------------------------------------- #
# CLI entry point: python -m devdash.scheduler --run-now
# --------------------------------------------------------------------------- #

async def _run_now() -> None:
    setup_logging()
    summaries = await refresh_all(get_store(), get_notifier())
    logger.info("run_now_finished", source_count=len(summaries))
    for summary in summaries:
        logger.info("run_now_result", source=summary.source, status=summary.status,
                    new=summary.new, skipped=summary.skipped)


if __name__ == "__main__":
    if "--run-now" in sys.argv:
        asyncio.run(_run_now())
    else:
        print("Usage: python -m devdash.scheduler --run-now")
        sys.exit(1)
