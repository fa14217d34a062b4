"""
Tests for the expiration sweeper.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.models import WaitlistEntry
from app.services import waitlist_repository
from app.services.sweeper_service import ExpirationSweeper
from tests.conftest import SLOT_DATE, add_entry, at

TODAY = SLOT_DATE
YESTERDAY = TODAY - timedelta(days=1)
TOMORROW = TODAY + timedelta(days=1)


async def statuses(session_factory) -> dict[str, str]:
    async with session_factory() as session:
        result = await session.execute(select(WaitlistEntry))
        return {e.user_id: e.status for e in result.scalars().all()}


@pytest.mark.asyncio
async def test_only_past_waiting_entries_expire(session_factory, sweeper):
    await add_entry(session_factory, "past", at(9), slot_date=YESTERDAY)
    await add_entry(session_factory, "last-week", at(9), slot_date=TODAY - timedelta(days=7))
    await add_entry(session_factory, "today", at(9), slot_date=TODAY)
    await add_entry(session_factory, "future", at(9), slot_date=TOMORROW)
    await add_entry(session_factory, "past-booked", at(9), slot_date=YESTERDAY, status="booked")
    await add_entry(session_factory, "past-cancelled", at(9), slot_date=YESTERDAY, status="cancelled")

    result = await sweeper.sweep(TODAY)

    assert result.expired == 2
    assert result.skipped == 0
    assert await statuses(session_factory) == {
        "past": "expired",
        "last-week": "expired",
        "today": "waiting",
        "future": "waiting",
        "past-booked": "booked",
        "past-cancelled": "cancelled",
    }


@pytest.mark.asyncio
async def test_sweep_pages_through_everything(session_factory, settings):
    for i in range(5):
        await add_entry(session_factory, f"u{i}", at(9, i), slot_date=YESTERDAY)
    small_pages = settings.model_copy(update={"SWEEP_PAGE_SIZE": 2})
    sweeper = ExpirationSweeper(session_factory, settings=small_pages)

    result = await sweeper.sweep(TODAY)

    assert result.scanned == 5
    assert result.expired == 5
    assert set((await statuses(session_factory)).values()) == {"expired"}


@pytest.mark.asyncio
async def test_second_sweep_is_a_no_op(session_factory, sweeper):
    await add_entry(session_factory, "past", at(9), slot_date=YESTERDAY)

    first = await sweeper.sweep(TODAY)
    second = await sweeper.sweep(TODAY)

    assert first.expired == 1
    assert (second.scanned, second.expired) == (0, 0)


@pytest.mark.asyncio
async def test_entry_booked_mid_sweep_is_skipped(session_factory, sweeper, monkeypatch):
    """An entry that left `waiting` after the page was read keeps its new status."""
    stale = await add_entry(session_factory, "booked-meanwhile", at(9), slot_date=YESTERDAY, status="booked")
    await add_entry(session_factory, "past", at(9), slot_date=YESTERDAY)
    original = waitlist_repository.list_expirable

    async def stale_page(db, today, limit):
        ids = await original(db, today, limit)
        return ids + [stale.id] if ids else ids

    monkeypatch.setattr(waitlist_repository, "list_expirable", stale_page)

    result = await sweeper.sweep(TODAY)

    assert (result.expired, result.skipped) == (1, 1)
    assert (await statuses(session_factory))["booked-meanwhile"] == "booked"


@pytest.mark.parametrize(
    "now, expected",
    [
        # 01:00 in New York
        (datetime(2024, 2, 15, 6, 0, tzinfo=timezone.utc), date(2024, 2, 15)),
        # 22:00 the previous evening in New York
        (datetime(2024, 2, 15, 3, 0, tzinfo=timezone.utc), date(2024, 2, 14)),
    ],
)
def test_today_uses_sweep_timezone(settings, now, expected):
    sweeper = ExpirationSweeper(None, settings=settings, clock=lambda: now)
    assert settings.SWEEP_TIMEZONE == "America/New_York"
    assert sweeper.today() == expected


@pytest.mark.asyncio
async def test_sweep_defaults_to_local_today(session_factory, settings):
    await add_entry(session_factory, "yesterday", at(9), slot_date=date(2024, 2, 14))
    late_evening = datetime(2024, 2, 15, 3, 0, tzinfo=timezone.utc)
    sweeper = ExpirationSweeper(session_factory, settings=settings, clock=lambda: late_evening)

    result = await sweeper.sweep()

    # Still the 14th in New York, so nothing has passed yet
    assert result.today == date(2024, 2, 14)
    assert result.expired == 0


@pytest.mark.asyncio
async def test_scheduled_run_survives_store_failure(session_factory, sweeper, monkeypatch):
    await add_entry(session_factory, "past", at(9), slot_date=YESTERDAY)

    async def locked(today, result):
        raise OperationalError("UPDATE waitlist_entries", {}, Exception("database is locked"))

    monkeypatch.setattr(sweeper, "_sweep_page", locked)

    assert await sweeper.run_scheduled() is None
    assert (await statuses(session_factory))["past"] == "waiting"


@pytest.mark.asyncio
async def test_scheduled_run_returns_result(session_factory, settings):
    await add_entry(session_factory, "past", at(9), slot_date=YESTERDAY)
    noon = datetime(2024, 2, 15, 17, 0, tzinfo=timezone.utc)
    sweeper = ExpirationSweeper(session_factory, settings=settings, clock=lambda: noon)

    result = await sweeper.run_scheduled()

    assert result is not None
    assert result.expired == 1
