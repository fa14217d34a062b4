"""
Waitlist entry: one user's standing request for a resource on a date.

Key design decisions:
- Only (resource_id, date) is matched against a freed slot; time_slot is advisory
- Priority tier is NOT stored here; it is resolved per reaction from subscriptions
- Status moves waiting -> booked | expired | cancelled and never leaves a terminal state
- Composite index mirrors the allocator query: WHERE resource_id, date, status ORDER BY created_at
"""

from sqlalchemy import Column, Date, String, Index, CheckConstraint

from app.core.clock import new_id
from app.db.base import Base, TimestampMixin

WAITLIST_WAITING = "waiting"
WAITLIST_BOOKED = "booked"
WAITLIST_EXPIRED = "expired"
WAITLIST_CANCELLED = "cancelled"


class WaitlistEntry(Base, TimestampMixin):
    __tablename__ = "waitlist_entries"

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(128), nullable=False, index=True)
    user_display_name = Column(String(255), nullable=True)
    resource_id = Column(String(64), nullable=False)
    date = Column(Date, nullable=False)
    time_slot = Column(String(5), nullable=True)
    status = Column(String(20), nullable=False, default=WAITLIST_WAITING)
    booking_id = Column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_waitlist_slot_fifo", "resource_id", "date", "status", "created_at"),
        Index("ix_waitlist_status_date", "status", "date"),
        CheckConstraint(
            "status IN ('waiting', 'booked', 'expired', 'cancelled')",
            name="check_waitlist_status",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<WaitlistEntry(id={self.id}, user={self.user_id}, resource={self.resource_id}, "
            f"date={self.date}, status={self.status})>"
        )
