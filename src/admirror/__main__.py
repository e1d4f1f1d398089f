"""
Main entrypoint: one-shot sync, or the long-running scheduler.

FastAPI runs separately under uvicorn.

Usage:
    python -m admirror sync         # run one full sync and exit
    python -m admirror              # starts the daily sync scheduler
    uvicorn admirror.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
# httpx logs full request URLs at INFO, and those carry the access token.
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def _build_service():
    from admirror.config import get_settings
    from admirror.db.engine import get_engine
    from admirror.sync.service import build_sync_service

    return build_sync_service(get_engine(), get_settings())


async def _run_once() -> int:
    from admirror.sync.service import SyncAbortedError

    service = _build_service()
    try:
        outcome = await service.run(trigger="cli")
    except SyncAbortedError as exc:
        logger.error("Sync aborted: %s", exc)
        return 1

    for result in outcome.results:
        logger.info(
            "%-14s %-10s count=%d%s",
            result.display_name, result.status.value, result.count,
            f" error={result.error}" if result.error else "",
        )
    return 0 if outcome.overall_success else 1


async def _run_scheduler() -> None:
    from admirror.config import get_settings
    from admirror.scheduler.jobs import build_scheduler

    settings = get_settings()
    scheduler = build_scheduler(_build_service())
    scheduler.start()
    logger.info("Scheduler started (daily sync at %02d:00 UTC)", settings.sync_hour)

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


if __name__ == "__main__":
    # Dispatch on first argument: `python -m admirror sync` or just `python -m admirror`
    if len(sys.argv) > 1 and sys.argv[1] == "sync":
        sys.exit(asyncio.run(_run_once()))
    else:
        asyncio.run(_run_scheduler())
