"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import get_redis, close_redis
from .processed_events import ProcessedEventStore
from .booking_event_stream import RedisStreamEventSource

__all__ = ['get_redis', 'close_redis', 'ProcessedEventStore', 'RedisStreamEventSource']
