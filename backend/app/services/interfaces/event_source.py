"""
Booking update event source interface.
Any feed works as long as it delivers before/after state at least once.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from app.schemas.booking import BookingUpdateEvent

BookingUpdateHandler = Callable[[BookingUpdateEvent], Awaitable[object]]


class BookingEventSource(ABC):
    """
    Interface for feeds of booking document updates.

    Delivery contract:
    - At-least-once: an event is only acknowledged after the handler returns
    - Possibly duplicated: handlers must be idempotent
    - Every update is delivered, not only cancellations; filtering is the handler's job

    Implementations:
    - RedisStreamEventSource: consumer group over a Redis stream
    - The HTTP webhook route in app.api.routes.booking_events
    """

    @abstractmethod
    async def run(self, handler: BookingUpdateHandler) -> None:
        """Consume events until stop() is called, passing each to `handler`."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Ask run() to return after the event in flight."""
        pass
