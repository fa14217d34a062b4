from app.schemas.booking import BookingSnapshot, BookingUpdateEvent
from app.schemas.waitlist import (
    WaitlistEntryResponse,
    WaitlistListResponse,
    AllocationOutcomeResponse,
    BookingEventAccepted,
    SweepResultResponse,
)

__all__ = [
    "BookingSnapshot", "BookingUpdateEvent",
    "WaitlistEntryResponse", "WaitlistListResponse",
    "AllocationOutcomeResponse", "BookingEventAccepted", "SweepResultResponse",
]
