"""
Pydantic schemas for booking change events delivered by the event source.
"""

import datetime as dt
from typing import Literal, Optional
from pydantic import BaseModel, Field

BookingStatus = Literal["pending", "confirmed", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed"]
BookingOrigin = Literal["direct", "waitlist_auto"]


class BookingSnapshot(BaseModel):
    """State of a booking document on one side of an update."""

    id: str
    resource_id: str
    sub_resource_id: Optional[str] = None
    date: dt.date
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    end_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    user_id: str
    user_display_name: Optional[str] = None
    status: BookingStatus
    payment_status: PaymentStatus = "pending"
    origin: BookingOrigin = "direct"
    origin_waitlist_entry_id: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    model_config = {"from_attributes": True}


class BookingUpdateEvent(BaseModel):
    """One change notification: the booking before and after the write."""

    booking_id: str
    before: BookingSnapshot
    after: BookingSnapshot

    @property
    def is_cancellation(self) -> bool:
        """Edge trigger: only the transition into cancelled counts."""
        return self.before.status != "cancelled" and self.after.status == "cancelled"
