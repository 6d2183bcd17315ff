"""
Scheduled dispatch jobs.

- daily stuck-driver reset (default 07:55)
- daily pending-job reminder (default 17:00)
- periodic outbox flush

Jobs run on the application's event loop through AsyncIOScheduler and each
opens its own session. Started and stopped by the FastAPI lifespan.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

from motorpool.app.core.config import settings
from motorpool.app.db.session import AsyncSessionLocal
from motorpool.app.services import acceptance_tokens, booking_lifecycle
from motorpool.app.services.driver_registry import reset_stuck_drivers
from motorpool.app.services.notification_service import NotificationDispatcher, dispatcher

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone=settings.scheduler_timezone)


async def run_driver_reset(session_factory: async_sessionmaker = AsyncSessionLocal) -> int:
    """Return BUSY drivers to AVAILABLE and drop expired acceptance tokens."""
    async with session_factory() as db:
        count = await reset_stuck_drivers(db)
        purged = await acceptance_tokens.purge_expired(db)
        await db.commit()
    logger.info("Daily reset: %s driver(s) freed, %s expired token(s) purged", count, purged)
    return count


async def run_pending_reminder(
    session_factory: async_sessionmaker = AsyncSessionLocal,
    notifier: NotificationDispatcher = dispatcher
) -> int:
    async with session_factory() as db:
        queued = await booking_lifecycle.remind_pending_jobs(db)
        await db.commit()
    await notifier.deliver_pending()
    return queued


async def run_outbox_flush(notifier: NotificationDispatcher = dispatcher) -> int:
    return await notifier.deliver_pending()


def start_scheduler() -> None:
    """Register all jobs and start the scheduler."""
    scheduler.add_job(
        run_driver_reset,
        trigger=CronTrigger(
            hour=settings.driver_reset_hour,
            minute=settings.driver_reset_minute,
            timezone=settings.scheduler_timezone
        ),
        id="driver_reset",
        name="Reset stuck drivers",
        replace_existing=True
    )
    scheduler.add_job(
        run_pending_reminder,
        trigger=CronTrigger(hour=settings.reminder_hour, minute=0, timezone=settings.scheduler_timezone),
        id="pending_reminder",
        name="Remind drivers of open jobs",
        replace_existing=True
    )
    scheduler.add_job(
        run_outbox_flush,
        trigger=IntervalTrigger(minutes=settings.outbox_flush_minutes),
        id="outbox_flush",
        name="Deliver queued notifications",
        replace_existing=True
    )

    scheduler.start()
    logger.info("Scheduler started with %s job(s)", len(scheduler.get_jobs()))


def stop_scheduler() -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
