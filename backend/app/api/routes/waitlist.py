"""
Waitlist endpoints: operator view of a slot's queue and the manual sweep trigger.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import TransientStoreError
from app.core.logging import get_logger
from app.core.security import verify_internal_token
from app.db.session import get_db
from app.schemas.waitlist import SweepResultResponse, WaitlistEntryResponse, WaitlistListResponse
from app.services import waitlist_repository
from app.services.engine_factory import get_sweeper
from app.services.sweeper_service import ExpirationSweeper

logger = get_logger(__name__)

router = APIRouter(
    prefix="/waitlist",
    tags=["Waitlist"],
    dependencies=[Depends(verify_internal_token)],
)


@router.get("/{resource_id}/{slot_date}", response_model=WaitlistListResponse)
async def get_waitlist(
    resource_id: str,
    slot_date: date,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Waiting entries for a resource/date, oldest first, with the full count."""
    entries = await waitlist_repository.list_waiting(db, resource_id, slot_date, limit)
    total = await waitlist_repository.count_waiting(db, resource_id, slot_date)
    return WaitlistListResponse(
        resource_id=resource_id,
        date=slot_date,
        entries=[WaitlistEntryResponse.model_validate(e) for e in entries],
        total=total,
    )


@router.post("/sweep", response_model=SweepResultResponse)
async def run_sweep(sweeper: ExpirationSweeper = Depends(get_sweeper)):
    """Run the expiration sweep now instead of waiting for the nightly job."""
    try:
        result = await sweeper.sweep()
    except TransientStoreError as e:
        logger.error("waitlist_sweep_failed", operation=e.operation, attempts=e.attempts)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Waitlist store unavailable, try again later",
        )
    return SweepResultResponse(
        today=result.today,
        scanned=result.scanned,
        expired=result.expired,
        skipped=result.skipped,
    )
