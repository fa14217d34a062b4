"""
Waitlist Store queries.

All reads go through the ix_waitlist_slot_fifo / ix_waitlist_status_date
indexes. Status transitions use conditional UPDATEs (WHERE status = 'waiting')
and report rowcount, the same compare-and-set shape the booking path uses for
optimistic locking: a zero rowcount means another writer got there first.
"""

from datetime import date

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.models.waitlist import (
    WaitlistEntry,
    WAITLIST_WAITING,
    WAITLIST_BOOKED,
    WAITLIST_EXPIRED,
)


async def list_waiting(
    db: AsyncSession,
    resource_id: str,
    slot_date: date,
    limit: int,
) -> list[WaitlistEntry]:
    """Waiting entries for a resource/date, oldest first, capped at `limit`."""
    result = await db.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.resource_id == resource_id,
            WaitlistEntry.date == slot_date,
            WaitlistEntry.status == WAITLIST_WAITING,
        )
        .order_by(WaitlistEntry.created_at.asc(), WaitlistEntry.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_waiting(db: AsyncSession, resource_id: str, slot_date: date) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(WaitlistEntry)
        .where(
            WaitlistEntry.resource_id == resource_id,
            WaitlistEntry.date == slot_date,
            WaitlistEntry.status == WAITLIST_WAITING,
        )
    )
    return result.scalar_one()


async def list_expirable(db: AsyncSession, today: date, limit: int) -> list[str]:
    """Ids of waiting entries whose date is strictly before `today`."""
    result = await db.execute(
        select(WaitlistEntry.id)
        .where(
            WaitlistEntry.status == WAITLIST_WAITING,
            WaitlistEntry.date < today,
        )
        .order_by(WaitlistEntry.date.asc(), WaitlistEntry.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_expired_if_waiting(db: AsyncSession, entry_id: str) -> bool:
    """waiting -> expired. False if the entry already reached another state."""
    result = await db.execute(
        update(WaitlistEntry)
        .where(
            WaitlistEntry.id == entry_id,
            WaitlistEntry.status == WAITLIST_WAITING,
        )
        .values(status=WAITLIST_EXPIRED, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def mark_booked_if_waiting(db: AsyncSession, entry_id: str, booking_id: str) -> int:
    """waiting -> booked with the new booking id. Returns the number of rows moved."""
    result = await db.execute(
        update(WaitlistEntry)
        .where(
            WaitlistEntry.id == entry_id,
            WaitlistEntry.status == WAITLIST_WAITING,
        )
        .values(status=WAITLIST_BOOKED, booking_id=booking_id, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
