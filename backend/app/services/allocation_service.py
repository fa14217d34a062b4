"""
Waitlist allocator: reacts to a booking cancellation by handing the freed slot
to the highest-priority waiting user.

ALLOCATION STRATEGY: Single Transactional Attempt
==================================================

Problem:
  A cancellation frees a slot. Several things may race for it at once:
  a direct booking from the app, a duplicate delivery of the same
  cancellation event, or a second reaction on the same slot. Two of them
  must never both end up holding a pending/confirmed booking.

Solution:
  1. Read up to WAITLIST_CANDIDATE_LIMIT waiting entries for (resource, date),
     oldest first. Entries past the cap wait for the next cancellation.
  2. Resolve every candidate's tier now (concurrently), never from a cached
     value. A failing lookup counts as standard tier.
  3. Partition into priority / standard, each keeping FIFO order.
  4. If a priority candidate exists, run ONE transaction for the first one:
       a. re-read active bookings for the slot key
       b. abort if one exists (slot already taken)
       c. insert the waitlist_auto booking (pending / pending payment)
       d. flip the entry waiting -> booked with the new booking id
     The partial unique index uq_bookings_active_slot turns a concurrent
     insert that slipped past (a) into an IntegrityError, which is the same
     abort path. Both writes commit together or not at all.
  5. Everyone considered and not booked is the remainder and gets an
     availability notification, whichever tier they are in.

  A lost race is an outcome, not an error: it is logged at info level and the
  next candidate is NOT tried in the same reaction. Only transient store
  failures are retried (bounded exponential backoff); when the budget runs
  out the reaction is dropped and logged at error level.

Duplicate events:
  Cancellation is edge-triggered (before != cancelled, after == cancelled).
  A Redis marker per booking id short-circuits replays; when Redis is
  unavailable the abort-if-occupied check in step 4 still prevents a second
  booking.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, IdFactory, new_id, utcnow
from app.core.config import Settings, get_settings
from app.core.errors import AllocationAborted, PartialWriteError, TransientStoreError
from app.core.logging import get_logger
from app.core.metrics import allocation_latency, record_reaction, tier_lookup_failures
from app.core.retry import retry_transient
from app.infrastructure.processed_events import ProcessedEventStore
from app.models.booking import (
    Booking,
    ACTIVE_BOOKING_STATUSES,
    BOOKING_PENDING,
    PAYMENT_PENDING,
    ORIGIN_WAITLIST_AUTO,
)
from app.models.waitlist import WaitlistEntry, WAITLIST_BOOKED
from app.schemas.booking import BookingSnapshot, BookingUpdateEvent
from app.services import waitlist_repository
from app.services.interfaces.tier_lookup import TierLookup, TIER_PRIORITY, TIER_STANDARD

logger = get_logger(__name__)

RESULT_ALLOCATED = "allocated"
RESULT_CONFLICT = "conflict"
RESULT_NO_PRIORITY_CANDIDATES = "no_priority_candidates"
RESULT_NO_CANDIDATES = "no_candidates"
RESULT_DROPPED = "dropped"


@dataclass(frozen=True)
class SlotKey:
    resource_id: str
    date: date
    start_time: str
    end_time: str
    sub_resource_id: Optional[str] = field(default=None, compare=False)

    @classmethod
    def from_booking(cls, booking: BookingSnapshot) -> "SlotKey":
        return cls(
            resource_id=booking.resource_id,
            date=booking.date,
            start_time=booking.start_time,
            end_time=booking.end_time,
            sub_resource_id=booking.sub_resource_id,
        )


@dataclass
class AllocationOutcome:
    result: str
    slot: SlotKey
    winner: Optional[WaitlistEntry] = None
    new_booking_id: Optional[str] = None
    remainder: list[WaitlistEntry] = field(default_factory=list)


class WaitlistAllocator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tier_lookup: TierLookup,
        dispatcher,
        *,
        settings: Optional[Settings] = None,
        processed_events: Optional[ProcessedEventStore] = None,
        clock: Clock = utcnow,
        id_factory: IdFactory = new_id,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.tier_lookup = tier_lookup
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        self.processed_events = processed_events
        self.clock = clock
        self.id_factory = id_factory
        self.sleep = sleep

    async def handle_booking_update(self, event: BookingUpdateEvent) -> Optional[AllocationOutcome]:
        """
        Entry point for the event source.
        Returns None when the update is not a fresh cancellation or was already handled.
        """
        if not event.is_cancellation:
            logger.debug(
                "booking_update_ignored",
                booking_id=event.booking_id,
                before=event.before.status,
                after=event.after.status,
            )
            return None

        slot = SlotKey.from_booking(event.after)
        with structlog.contextvars.bound_contextvars(
            booking_id=event.booking_id,
            resource_id=slot.resource_id,
            slot_date=slot.date.isoformat(),
            start_time=slot.start_time,
        ):
            # A booking is cancelled at most once, so its id identifies the event
            event_key = f"booking-cancelled:{event.booking_id}"
            if self.processed_events and await self.processed_events.is_processed(event_key):
                record_reaction("duplicate")
                logger.info("booking_cancellation_duplicate")
                return None

            outcome = await self.allocate(slot)

            if outcome.result != RESULT_DROPPED and self.processed_events:
                await self.processed_events.mark_processed(event_key)
            return outcome

    async def allocate(self, slot: SlotKey) -> AllocationOutcome:
        started = time.perf_counter()
        try:
            outcome = await self._allocate_slot(slot)
        finally:
            allocation_latency.observe(time.perf_counter() - started)

        record_reaction(outcome.result)
        if outcome.result == RESULT_DROPPED:
            return outcome

        await self.dispatcher.dispatch(outcome)
        return outcome

    async def _allocate_slot(self, slot: SlotKey) -> AllocationOutcome:
        try:
            candidates = await self._retry("list_waiting", lambda: self._list_candidates(slot))
        except TransientStoreError as exc:
            return self._dropped(slot, exc)

        if not candidates:
            logger.info("waitlist_empty")
            return AllocationOutcome(RESULT_NO_CANDIDATES, slot)

        tiers = await self._resolve_tiers(candidates)
        priority_candidates = [c for c in candidates if tiers[c.user_id] == TIER_PRIORITY]

        if not priority_candidates:
            logger.info("waitlist_no_priority_candidates", candidates=len(candidates))
            return AllocationOutcome(RESULT_NO_PRIORITY_CANDIDATES, slot, remainder=list(candidates))

        winner = priority_candidates[0]
        try:
            booking_id = await self._retry("allocate", lambda: self._try_allocate(slot, winner))
        except TransientStoreError as exc:
            return self._dropped(slot, exc)

        if booking_id is None:
            return AllocationOutcome(RESULT_CONFLICT, slot, remainder=list(candidates))

        # Reflect the committed state on the detached instance
        winner.status = WAITLIST_BOOKED
        winner.booking_id = booking_id

        logger.info(
            "waitlist_allocated",
            entry_id=winner.id,
            user_id=winner.user_id,
            new_booking_id=booking_id,
            candidates=len(candidates),
        )
        return AllocationOutcome(
            RESULT_ALLOCATED,
            slot,
            winner=winner,
            new_booking_id=booking_id,
            remainder=[c for c in candidates if c.id != winner.id],
        )

    async def _list_candidates(self, slot: SlotKey) -> list[WaitlistEntry]:
        async with self.session_factory() as session:
            return await waitlist_repository.list_waiting(
                session,
                slot.resource_id,
                slot.date,
                self.settings.WAITLIST_CANDIDATE_LIMIT,
            )

    async def _resolve_tiers(self, candidates: list[WaitlistEntry]) -> dict[str, str]:
        """One lookup per distinct user, issued concurrently."""
        user_ids = list(dict.fromkeys(c.user_id for c in candidates))
        results = await asyncio.gather(
            *(self.tier_lookup.get_tier(user_id) for user_id in user_ids),
            return_exceptions=True,
        )

        tiers: dict[str, str] = {}
        for user_id, result in zip(user_ids, results):
            if isinstance(result, Exception):
                tier_lookup_failures.inc()
                logger.warning("tier_lookup_failed", user_id=user_id, error=str(result))
                tiers[user_id] = TIER_STANDARD
            elif isinstance(result, BaseException):
                raise result
            elif result == TIER_PRIORITY:
                tiers[user_id] = TIER_PRIORITY
            else:
                tiers[user_id] = TIER_STANDARD
        return tiers

    async def _try_allocate(self, slot: SlotKey, winner: WaitlistEntry) -> Optional[str]:
        """
        The read-abort-or-write transaction.
        Returns the new booking id, or None when the slot or the entry was taken.
        """
        booking_id = self.id_factory()
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await self._allocate_in_transaction(session, slot, winner, booking_id)
        except AllocationAborted as exc:
            logger.info("waitlist_allocation_conflict", reason=exc.reason, entry_id=winner.id)
            return None
        except IntegrityError:
            logger.info("waitlist_allocation_conflict", reason="concurrent_booking", entry_id=winner.id)
            return None
        return booking_id

    async def _allocate_in_transaction(
        self,
        session: AsyncSession,
        slot: SlotKey,
        winner: WaitlistEntry,
        booking_id: str,
    ) -> None:
        occupied = await session.execute(
            select(Booking.id)
            .where(
                Booking.resource_id == slot.resource_id,
                Booking.date == slot.date,
                Booking.start_time == slot.start_time,
                Booking.end_time == slot.end_time,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .limit(1)
        )
        if occupied.scalar_one_or_none() is not None:
            raise AllocationAborted("slot_occupied")

        now = self.clock()
        session.add(
            Booking(
                id=booking_id,
                resource_id=slot.resource_id,
                sub_resource_id=slot.sub_resource_id,
                date=slot.date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                user_id=winner.user_id,
                user_display_name=winner.user_display_name,
                status=BOOKING_PENDING,
                # Charging the card on file happens outside this engine
                payment_status=PAYMENT_PENDING,
                origin=ORIGIN_WAITLIST_AUTO,
                origin_waitlist_entry_id=winner.id,
                created_at=now,
                updated_at=now,
            )
        )
        await session.flush()

        moved = await waitlist_repository.mark_booked_if_waiting(session, winner.id, booking_id)
        if moved == 0:
            raise AllocationAborted("entry_not_waiting")
        if moved != 1:
            logger.critical("waitlist_partial_write", entry_id=winner.id, rows=moved)
            raise PartialWriteError(f"waitlist update touched {moved} rows for entry {winner.id}")

    async def _retry(self, operation: str, fn):
        return await retry_transient(
            operation,
            fn,
            attempts=self.settings.ALLOCATION_MAX_ATTEMPTS,
            base_delay=self.settings.ALLOCATION_BACKOFF_BASE_SECONDS,
            max_delay=self.settings.ALLOCATION_BACKOFF_MAX_SECONDS,
            sleep=self.sleep,
        )

    def _dropped(self, slot: SlotKey, exc: TransientStoreError) -> AllocationOutcome:
        logger.error(
            "waitlist_reaction_dropped",
            operation=exc.operation,
            attempts=exc.attempts,
            error=str(exc.__cause__ or exc),
        )
        return AllocationOutcome(RESULT_DROPPED, slot)
