"""
APScheduler jobs for background sync.

A daily full sync keeps the mirror fresh when nobody triggers one by hand.
It goes through the same MirrorSyncService as the API, so it is refused
while another run holds the session.
"""
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from admirror.config import get_settings
from admirror.sync.service import MirrorSyncService, SyncAbortedError
from admirror.sync.session import SyncAlreadyRunningError

logger = logging.getLogger(__name__)


def build_scheduler(service: MirrorSyncService) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        service: Sync service the daily job runs.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _daily_sync,
        trigger="cron",
        hour=settings.sync_hour,
        minute=0,
        id="daily_sync",
        replace_existing=True,
        kwargs={"service": service},
    )

    return scheduler


async def _daily_sync(service: MirrorSyncService) -> None:
    """Daily job: full sync of every entity type."""
    logger.info("Daily sync starting at %s", datetime.utcnow().isoformat())

    try:
        outcome = await service.run(trigger="scheduler")
    except SyncAlreadyRunningError:
        logger.info("Daily sync skipped: a sync is already running")
        return
    except SyncAbortedError as exc:
        logger.error("Daily sync aborted: %s", exc)
        return
    except Exception as exc:
        logger.error("Daily sync failed: %s", exc)
        return

    logger.info("Daily sync finished: overall_success=%s", outcome.overall_success)
