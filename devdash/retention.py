from datetime import datetime, timedelta

from devdash.models import utcnow
from devdash.storage import BaseStore
from devdash.utils.logging import get_logger

logger = get_logger(__name__)


async def prune_old_posts(store: BaseStore, retention_days: int, now: datetime | None = None) -> int:
    """Delete posts published more than ``retention_days`` ago. Returns the count."""
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    deleted = await store.delete_posts_before(cutoff)
    logger.info("old_posts_pruned", deleted=deleted, retention_days=retention_days)
    return deleted
