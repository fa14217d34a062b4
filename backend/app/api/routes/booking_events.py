"""
Booking update webhook: the HTTP flavour of the booking event source.

Whatever watches the bookings store POSTs every update here with the
before/after documents. Delivery may repeat; the allocator filters for the
cancellation edge and is idempotent.
"""

from fastapi import APIRouter, Depends, status

from app.core.security import verify_internal_token
from app.schemas.booking import BookingUpdateEvent
from app.schemas.waitlist import AllocationOutcomeResponse, BookingEventAccepted, WaitlistEntryResponse
from app.services.allocation_service import AllocationOutcome, WaitlistAllocator
from app.services.engine_factory import get_allocator

router = APIRouter(
    prefix="/booking-events",
    tags=["Booking Events"],
    dependencies=[Depends(verify_internal_token)],
)


def outcome_to_response(outcome: AllocationOutcome) -> AllocationOutcomeResponse:
    slot = outcome.slot
    return AllocationOutcomeResponse(
        result=outcome.result,
        resource_id=slot.resource_id,
        date=slot.date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        winner=WaitlistEntryResponse.model_validate(outcome.winner) if outcome.winner else None,
        new_booking_id=outcome.new_booking_id,
        remainder=[WaitlistEntryResponse.model_validate(e) for e in outcome.remainder],
    )


@router.post("/", response_model=BookingEventAccepted, status_code=status.HTTP_202_ACCEPTED)
async def receive_booking_event(
    event: BookingUpdateEvent,
    allocator: WaitlistAllocator = Depends(get_allocator),
):
    """
    Handle one booking update.

    Non-cancellation updates and replays of an already handled cancellation
    return `processed: false`. Otherwise the allocation outcome is returned;
    losing the slot to a concurrent booking is reported as `conflict`, not as
    an error status.
    """
    outcome = await allocator.handle_booking_update(event)
    if outcome is None:
        return BookingEventAccepted(processed=False)
    return BookingEventAccepted(processed=True, outcome=outcome_to_response(outcome))
