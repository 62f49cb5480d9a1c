"""Background task scheduler — runs the daily overdue sweep.

Uses FastAPI's lifespan context to start/stop an asyncio background loop
that sleeps until the configured hour and fires once per day.

Configuration (.env):
    OVERDUE_SWEEP_HOUR=1      run at 01:00 UTC daily
    SCHEDULER_ENABLED=false   disable the loop (tests, extra workers)

The sweep is a single guarded UPDATE, so running it from several
workers, or from the CLI at the same time, is harmless.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone

from fastapi import FastAPI

from backoffice.config import settings
from backoffice.database import async_session
from backoffice.utils.cache import close_redis

logger = logging.getLogger("backoffice.scheduler")


async def run_overdue_sweep(today: date | None = None) -> int:
    """Run the overdue sweep in its own transaction; return updated rows."""
    from backoffice.services.invoices import update_overdue_invoices

    async with async_session() as db:
        try:
            count = await update_overdue_invoices(db, today)
            await db.commit()
            return count
        except Exception:
            await db.rollback()
            raise


def seconds_until(hour: int, now: datetime) -> float:
    """Seconds from `now` to the next `hour`:00 UTC."""
    next_run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        # Already past today's target, schedule for tomorrow
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def _scheduler_loop() -> None:
    """Sleep loop that fires the overdue sweep once per day."""
    while True:
        now = datetime.now(timezone.utc)
        wait_seconds = seconds_until(settings.overdue_sweep_hour, now)
        logger.info(
            "Next overdue sweep at %s (in %.0f seconds)",
            (now + timedelta(seconds=wait_seconds)).isoformat(),
            wait_seconds,
        )

        await asyncio.sleep(wait_seconds)

        try:
            await run_overdue_sweep()
        except Exception:
            logger.exception("Unhandled error in overdue sweep")

        # Small buffer to avoid running twice in the same minute
        await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the scheduler on startup, cancel on shutdown."""
    task = None
    if settings.scheduler_enabled:
        task = asyncio.create_task(_scheduler_loop())
        logger.info("Overdue sweep scheduler started")
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Overdue sweep scheduler stopped")
        await close_redis()
