"""Source status strings, persisted and published on every change."""

from dataclasses import dataclass
from datetime import datetime

from devdash.errors import ErrorKind
from devdash.models import Source, utcnow
from devdash.notifier import StatusNotifier
from devdash.storage import BaseStore
from devdash.utils.logging import get_logger

logger = get_logger(__name__)

REFRESHING = "refreshing..."
UNSUPPORTED_STATUS = "error: unsupported source type"


@dataclass(frozen=True)
class Success:
    new_count: int


@dataclass(frozen=True)
class Error:
    kind: ErrorKind
    detail: str


@dataclass(frozen=True)
class Unsupported:
    pass


Outcome = Success | Error | Unsupported


def status_message(outcome: Outcome) -> str:
    if isinstance(outcome, Success):
        return f"ok ({outcome.new_count} new)" if outcome.new_count > 0 else "ok"
    if isinstance(outcome, Error):
        return f"error: {outcome.detail}"
    return UNSUPPORTED_STATUS


async def set_status(
    source: Source,
    new_status: str,
    store: BaseStore,
    notifier: StatusNotifier,
    fetched_at: datetime | None = None,
) -> None:
    source.status = new_status
    if fetched_at is not None:
        source.last_fetched_at = fetched_at
    await store.save_source_status(source)
    await notifier.publish(source.id, new_status)


async def mark_refreshing(source: Source, store: BaseStore, notifier: StatusNotifier) -> None:
    await set_status(source, REFRESHING, store, notifier)


async def report(
    source: Source,
    outcome: Outcome,
    store: BaseStore,
    notifier: StatusNotifier,
    now: datetime | None = None,
) -> str:
    """Record the outcome of a fetch; only a success moves last_fetched_at."""
    message = status_message(outcome)
    fetched_at = (now or utcnow()) if isinstance(outcome, Success) else None
    await set_status(source, message, store, notifier, fetched_at=fetched_at)

    if isinstance(outcome, Success):
        logger.info("source_status_ok", source=source.name, status=message)
    else:
        logger.warning("source_status_error", source=source.name, status=message)
    return message
