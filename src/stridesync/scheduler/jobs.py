"""
APScheduler jobs for background refresh.

A nightly refresh keeps the store current and spends leftover enrichment
budget on activities still missing calories, even on days nobody opens
the app.

The scheduler runs inside the long-lived process started by
`python -m stridesync` (wired in __main__.py).
"""
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from stridesync.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(engine) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine to pass to the sync service.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _nightly_refresh,
        trigger="cron",
        hour=settings.refresh_hour,
        minute=0,
        id="nightly_refresh",
        replace_existing=True,
        kwargs={"engine": engine},
    )

    return scheduler


async def _nightly_refresh(engine) -> None:
    """
    Nightly job: refresh the default owner's window.

    Idempotent; safe to run if a refresh already happened today.
    """
    from stridesync.sync.service import build_sync_service, owner_locks

    settings = get_settings()
    owner_id = settings.default_owner_id
    logger.info("Nightly refresh starting at %s", datetime.utcnow().isoformat())

    try:
        service = build_sync_service(engine, settings)
        async with owner_locks.lock_for(owner_id):
            result = await service.refresh(
                owner_id,
                settings.default_window_days,
                timeout=settings.refresh_timeout_seconds,
            )
        logger.info(
            "Nightly refresh done: %d activities from %s, %d detail calls",
            len(result.records), result.source.value, result.enrichment_calls_used,
        )

    except Exception as exc:
        logger.error("Nightly refresh failed: %s", exc)
