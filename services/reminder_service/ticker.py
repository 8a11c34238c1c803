"""
Optional in-process ticker for the reminder sweep.

Production runs the sweep from an external cron hitting POST /reminders/sweep.
For single-node deployments the same sweep can be driven by APScheduler here.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from shared.config import settings
from shared.config.database import AsyncSessionLocal

logger = logging.getLogger(__name__)

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine missed runs into one
    'max_instances': 1,  # Never overlap sweeps
    'misfire_grace_time': 60,
}

ticker = AsyncIOScheduler(job_defaults=job_defaults, timezone='UTC')


async def run_reminder_sweep():
    from services.waitlist_service.service import get_reminder_scheduler

    try:
        async with AsyncSessionLocal() as db:
            report = await get_reminder_scheduler().sweep(db)
        logger.info(f"Reminder sweep finished: {len(report.sent)} sent, {len(report.cancelled)} cancelled")
    except Exception as e:
        logger.error(f"Reminder sweep failed: {e}")


def start_ticker():
    if not ticker.running:
        ticker.add_job(
            run_reminder_sweep,
            'interval',
            minutes=settings.REMINDER_SWEEP_MINUTES,
            id='reminder_sweep',
            replace_existing=True,
        )
        ticker.start()
        logger.info(f"Reminder ticker started (every {settings.REMINDER_SWEEP_MINUTES} minutes)")


def stop_ticker():
    if ticker.running:
        ticker.shutdown(wait=False)
