"""
Pydantic schemas for waitlist views, allocation outcomes and sweep results.
"""

import datetime as dt
from typing import Optional
from pydantic import BaseModel


class WaitlistEntryResponse(BaseModel):
    id: str
    user_id: str
    user_display_name: Optional[str]
    resource_id: str
    date: dt.date
    time_slot: Optional[str]
    status: str
    booking_id: Optional[str]
    created_at: dt.datetime

    model_config = {"from_attributes": True}


class WaitlistListResponse(BaseModel):
    resource_id: str
    date: dt.date
    entries: list[WaitlistEntryResponse]
    total: int


class AllocationOutcomeResponse(BaseModel):
    result: str
    resource_id: str
    date: dt.date
    start_time: str
    end_time: str
    winner: Optional[WaitlistEntryResponse] = None
    new_booking_id: Optional[str] = None
    remainder: list[WaitlistEntryResponse]


class BookingEventAccepted(BaseModel):
    processed: bool
    outcome: Optional[AllocationOutcomeResponse] = None


class SweepResultResponse(BaseModel):
    today: dt.date
    scanned: int
    expired: int
    skipped: int
