"""Background job that purges expired codes and tokens."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mcp_oauth.core.config import settings
from mcp_oauth.core.db import AsyncSessionLocal
from mcp_oauth.services.oauth import token_store

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def sweep_job(session_factory=AsyncSessionLocal):
    """Background sweep job."""
    try:
        async with session_factory() as db:
            result = await token_store.sweep_expired(db)
        logger.info(
            "Expired sweep removed %d token(s) and %d code(s)",
            result.tokens_removed,
            result.codes_removed,
        )
    except Exception:
        logger.exception("Expired sweep failed")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.add_job(
        sweep_job,
        trigger=IntervalTrigger(minutes=settings.SWEEP_INTERVAL_MINUTES),
        id="oauth_sweep",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, sweeping every {settings.SWEEP_INTERVAL_MINUTES} minutes"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")
