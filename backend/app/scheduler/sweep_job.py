"""
Daily waitlist expiration sweep, registered on an APScheduler AsyncIOScheduler.
Default schedule: 02:00 America/New_York ("0 2 * * *").
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.config import Settings
from app.services.sweeper_service import ExpirationSweeper

SWEEP_JOB_ID = "waitlist_expiration_sweep"


def build_scheduler(sweeper: ExpirationSweeper, settings: Settings) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=settings.SWEEP_TIMEZONE)
    scheduler.add_job(
        sweeper.run_scheduled,
        CronTrigger.from_crontab(settings.SWEEP_CRON, timezone=settings.SWEEP_TIMEZONE),
        id=SWEEP_JOB_ID,
        # A missed run is worth doing late, but only once
        coalesce=True,
        max_instances=1,
        misfire_grace_time=3600,
        replace_existing=True,
    )
    return scheduler
