"""
Booking update feed over a Redis stream.

Producers XADD one entry per booking document write with a single field,
`payload`, holding the JSON form of BookingUpdateEvent. This consumer reads
through a consumer group and XACKs only after the handler returned, so a crash
mid-reaction leaves the entry pending and it is re-read (from id 0) the next
time the consumer starts: at-least-once, possibly duplicated.
"""

import asyncio
from typing import Mapping

import redis.asyncio as redis
from pydantic import ValidationError

from app.core.logging import get_logger
from app.infrastructure.processed_events import RedisProvider
from app.schemas.booking import BookingUpdateEvent
from app.services.interfaces.event_source import BookingEventSource, BookingUpdateHandler

logger = get_logger(__name__)

RECONNECT_DELAY_SECONDS = 1.0


def decode_event(fields: Mapping[str, str]) -> BookingUpdateEvent:
    payload = fields.get("payload")
    if payload is None:
        raise ValueError("stream entry has no payload field")
    return BookingUpdateEvent.model_validate_json(payload)


class RedisStreamEventSource(BookingEventSource):
    def __init__(
        self,
        redis_provider: RedisProvider,
        stream_key: str,
        group: str,
        consumer: str,
        block_ms: int = 5000,
        batch_size: int = 10,
    ):
        self.redis_provider = redis_provider
        self.stream_key = stream_key
        self.group = group
        self.consumer = consumer
        self.block_ms = block_ms
        self.batch_size = batch_size
        self._stopping = asyncio.Event()

    async def stop(self) -> None:
        self._stopping.set()

    async def run(self, handler: BookingUpdateHandler) -> None:
        self._stopping.clear()
        client = await self.redis_provider()
        if client is None:
            logger.warning("booking_event_stream_unavailable", stream=self.stream_key)
            return

        await self._ensure_group(client)
        logger.info("booking_event_stream_started", stream=self.stream_key, group=self.group)

        # Entries delivered to this consumer before a restart but never acked,
        # then new ones
        read_from = "0"
        while not self._stopping.is_set():
            try:
                response = await client.xreadgroup(
                    self.group,
                    self.consumer,
                    {self.stream_key: read_from},
                    count=self.batch_size,
                    block=self.block_ms,
                )
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.warning("booking_event_stream_read_failed", error=str(e))
                await asyncio.sleep(RECONNECT_DELAY_SECONDS)
                continue

            messages = response[0][1] if response else []
            if read_from != ">":
                if not messages:
                    read_from = ">"
                    continue
                # Step past pending entries the handler failed on this time
                read_from = messages[-1][0]

            for message_id, fields in messages:
                await self._handle(client, handler, message_id, fields)

        logger.info("booking_event_stream_stopped", stream=self.stream_key)

    async def _ensure_group(self, client: redis.Redis) -> None:
        try:
            await client.xgroup_create(self.stream_key, self.group, id="0", mkstream=True)
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def _handle(self, client: redis.Redis, handler: BookingUpdateHandler, message_id: str, fields) -> None:
        try:
            event = decode_event(fields)
        except (ValidationError, ValueError) as e:
            # Unparseable entries would be redelivered forever; ack and move on
            logger.error("booking_event_malformed", message_id=message_id, error=str(e))
            await self._ack(client, message_id)
            return

        try:
            await handler(event)
        except Exception:
            logger.exception("booking_event_handler_failed", message_id=message_id, booking_id=event.booking_id)
            return

        await self._ack(client, message_id)

    async def _ack(self, client: redis.Redis, message_id: str) -> None:
        """A failed ack leaves the entry pending; it is re-read on the next start."""
        try:
            await client.xack(self.stream_key, self.group, message_id)
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning("booking_event_ack_failed", message_id=message_id, error=str(e))
