"""
Processed-event markers for duplicate cancellation deliveries.

The marker only saves work. On any Redis failure the store "fails open"
(reports not processed, skips the write) and the allocator's
abort-if-occupied check keeps the booking invariant on its own.
"""

from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

from app.core.logging import get_logger
from app.core.metrics import redis_connection_errors

logger = get_logger(__name__)

RedisProvider = Callable[[], Awaitable[Optional[redis.Redis]]]


class ProcessedEventStore:
    def __init__(self, redis_provider: RedisProvider, ttl_seconds: int = 86400, prefix: str = "waitlist:event:"):
        self.redis_provider = redis_provider
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    async def is_processed(self, event_key: str) -> bool:
        client = await self.redis_provider()
        if client is None:
            return False
        try:
            return bool(await client.exists(self.prefix + event_key))
        except Exception as e:
            redis_connection_errors.inc()
            logger.warning("processed_event_check_failed", event_key=event_key, error=str(e))
            return False

    async def mark_processed(self, event_key: str) -> None:
        client = await self.redis_provider()
        if client is None:
            return
        try:
            await client.set(self.prefix + event_key, "1", ex=self.ttl_seconds)
        except Exception as e:
            redis_connection_errors.inc()
            logger.warning("processed_event_mark_failed", event_key=event_key, error=str(e))
