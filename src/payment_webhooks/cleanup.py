import asyncio
import logging
from datetime import UTC, datetime, timedelta

from payment_webhooks.config import Settings
from payment_webhooks.store import IdempotencyStore

logger = logging.getLogger(__name__)


async def cleanup_task(store: IdempotencyStore, settings: Settings) -> None:
    while True:
        cutoff = datetime.now(UTC) - timedelta(days=settings.retention_days)
        try:
            deleted = await store.delete_expired(cutoff.isoformat())
        except Exception:
            logger.exception("Cleanup of processed webhook records failed, retrying next interval")
        else:
            if deleted:
                logger.info("Cleanup deleted %d processed webhook records", deleted)
        await asyncio.sleep(settings.cleanup_interval_hours * 3600)
