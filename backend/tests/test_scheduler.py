"""
Tests for the nightly sweep job registration.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

from app.scheduler.sweep_job import SWEEP_JOB_ID, build_scheduler
from app.services.sweeper_service import ExpirationSweeper


def test_sweep_job_runs_at_two_am_new_york(settings):
    sweeper = ExpirationSweeper(None, settings=settings)
    scheduler = build_scheduler(sweeper, settings)

    job = scheduler.get_job(SWEEP_JOB_ID)
    assert job is not None
    assert job.func == sweeper.run_scheduled
    assert job.coalesce is True
    assert job.max_instances == 1

    new_york = ZoneInfo("America/New_York")
    after = datetime(2024, 2, 15, 12, 0, tzinfo=new_york)
    next_run = job.trigger.get_next_fire_time(None, after)
    assert next_run.replace(tzinfo=None) == datetime(2024, 2, 16, 2, 0)
    assert next_run.utcoffset() == after.utcoffset()


def test_custom_cron(settings):
    custom = settings.model_copy(update={"SWEEP_CRON": "30 4 * * *", "SWEEP_TIMEZONE": "UTC"})
    scheduler = build_scheduler(ExpirationSweeper(None, settings=custom), custom)

    job = scheduler.get_job(SWEEP_JOB_ID)
    after = datetime(2024, 2, 15, 12, 0, tzinfo=ZoneInfo("UTC"))
    next_run = job.trigger.get_next_fire_time(None, after)
    assert (next_run.day, next_run.hour, next_run.minute) == (16, 4, 30)
