"""
Booking model: one user's claim on a slot.

Key design decisions:
- A slot is not a table; it is the composite key (resource_id, date, start_time, end_time)
- The partial unique index uq_bookings_active_slot allows at most one pending/confirmed
  booking per slot key, so a lost race surfaces as an IntegrityError at flush time
- Cancelled bookings are kept; they never transition back to an active status
"""

from sqlalchemy import Column, Date, String, Index, CheckConstraint, text

from app.core.clock import new_id
from app.db.base import Base, TimestampMixin

BOOKING_PENDING = "pending"
BOOKING_CONFIRMED = "confirmed"
BOOKING_CANCELLED = "cancelled"
ACTIVE_BOOKING_STATUSES = (BOOKING_PENDING, BOOKING_CONFIRMED)

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"

ORIGIN_DIRECT = "direct"
ORIGIN_WAITLIST_AUTO = "waitlist_auto"

_ACTIVE_SLOT_PREDICATE = text("status IN ('pending', 'confirmed')")


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(String(64), primary_key=True, default=new_id)
    resource_id = Column(String(64), nullable=False)
    sub_resource_id = Column(String(64), nullable=True)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    end_time = Column(String(5), nullable=False)
    user_id = Column(String(128), nullable=False, index=True)
    user_display_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=BOOKING_PENDING)
    payment_status = Column(String(20), nullable=False, default=PAYMENT_PENDING)
    origin = Column(String(20), nullable=False, default=ORIGIN_DIRECT)
    origin_waitlist_entry_id = Column(String(64), nullable=True)

    __table_args__ = (
        # One active booking per slot key
        Index(
            "uq_bookings_active_slot",
            "resource_id", "date", "start_time", "end_time",
            unique=True,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
        ),
        Index("ix_bookings_slot", "resource_id", "date", "start_time", "end_time"),
        CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="check_booking_status"),
        CheckConstraint("payment_status IN ('pending', 'paid', 'failed')", name="check_booking_payment_status"),
        CheckConstraint("origin IN ('direct', 'waitlist_auto')", name="check_booking_origin"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, resource={self.resource_id}, date={self.date}, "
            f"{self.start_time}-{self.end_time}, status={self.status})>"
        )
