"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .tier_lookup import TierLookup, TIER_PRIORITY, TIER_STANDARD
from .notification_transport import NotificationTransport
from .event_source import BookingEventSource, BookingUpdateHandler

__all__ = [
    'TierLookup', 'TIER_PRIORITY', 'TIER_STANDARD',
    'NotificationTransport',
    'BookingEventSource', 'BookingUpdateHandler',
]
