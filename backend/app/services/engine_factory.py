"""
Engine wiring.
Builds the allocator, sweeper and their collaborators from settings.

Route handlers reach these through FastAPI dependencies, so tests swap them
with app.dependency_overrides instead of patching module globals.
"""

from typing import Optional

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.infrastructure.processed_events import ProcessedEventStore
from app.infrastructure.redis_client import get_redis
from app.services.allocation_service import WaitlistAllocator
from app.services.interfaces.notification_transport import NotificationTransport
from app.services.interfaces.tier_lookup import TierLookup
from app.services.notification_service import NotificationDispatcher
from app.services.push_service import ExpoPushTransport, LoggingTransport
from app.services.sweeper_service import ExpirationSweeper
from app.services.tier_service import SubscriptionTierLookup


def build_transport() -> NotificationTransport:
    """
    Push transport selection:
    - PUSH_ENABLED: ExpoPushTransport (real delivery)
    - otherwise: LoggingTransport (messages are only logged)
    """
    settings = get_settings()
    if settings.PUSH_ENABLED:
        return ExpoPushTransport(SessionLocal, settings=settings)
    return LoggingTransport()


def build_tier_lookup() -> TierLookup:
    return SubscriptionTierLookup(SessionLocal)


def build_allocator() -> WaitlistAllocator:
    settings = get_settings()
    return WaitlistAllocator(
        SessionLocal,
        build_tier_lookup(),
        NotificationDispatcher(build_transport()),
        settings=settings,
        processed_events=ProcessedEventStore(get_redis, ttl_seconds=settings.PROCESSED_EVENT_TTL_SECONDS),
    )


def build_sweeper() -> ExpirationSweeper:
    return ExpirationSweeper(SessionLocal, settings=get_settings())


# Singleton instances
_allocator: Optional[WaitlistAllocator] = None
_sweeper: Optional[ExpirationSweeper] = None


def get_allocator() -> WaitlistAllocator:
    """Get allocator singleton."""
    global _allocator
    if _allocator is None:
        _allocator = build_allocator()
    return _allocator


def get_sweeper() -> ExpirationSweeper:
    """Get sweeper singleton."""
    global _sweeper
    if _sweeper is None:
        _sweeper = build_sweeper()
    return _sweeper
