"""
Notification dispatcher: turns an allocation outcome into push messages.

- The winner gets "you got the spot" with the new booking id.
- Every other candidate of the reaction gets "a spot opened", whatever their tier.

The allocation is already committed when this runs. Delivery failures are
logged and counted, never raised, and never touch the stores.
"""

import asyncio

from app.core.logging import get_logger
from app.core.metrics import record_notification
from app.services.interfaces.notification_transport import NotificationTransport

logger = get_logger(__name__)

WINNER_TITLE = "Auto-Booked! 🎉"
WINNER_BODY = "A spot opened and we booked it for you!"
AVAILABILITY_TITLE = "Spot Just Opened! ⚡"
AVAILABILITY_BODY = "A spot you're waiting for just opened up. Book now before it's gone!"


class NotificationDispatcher:
    def __init__(self, transport: NotificationTransport):
        self.transport = transport

    async def dispatch(self, outcome) -> None:
        """One message per user: duplicate entries collapse, and the winner gets no availability message."""
        slot = outcome.slot
        base_data = {
            "resourceId": slot.resource_id,
            "date": slot.date.isoformat(),
            "startTime": slot.start_time,
            "endTime": slot.end_time,
        }

        sends = []
        winner_user_id = None
        if outcome.winner is not None:
            winner_user_id = outcome.winner.user_id
            sends.append(
                self._send(
                    "winner",
                    winner_user_id,
                    WINNER_TITLE,
                    WINNER_BODY,
                    {**base_data, "type": "waitlist_auto_booked", "bookingId": outcome.new_booking_id or ""},
                )
            )

        # One message per user even if they hold duplicate entries
        notified = {winner_user_id} if winner_user_id else set()
        for entry in outcome.remainder:
            if entry.user_id in notified:
                continue
            notified.add(entry.user_id)
            sends.append(
                self._send(
                    "availability",
                    entry.user_id,
                    AVAILABILITY_TITLE,
                    AVAILABILITY_BODY,
                    {**base_data, "type": "waitlist_spot_opened", "waitlistEntryId": entry.id},
                )
            )

        if not sends:
            return

        results = await asyncio.gather(*sends)
        logger.info(
            "waitlist_notifications_dispatched",
            result=outcome.result,
            sent=sum(1 for ok in results if ok),
            failed=sum(1 for ok in results if not ok),
        )

    async def _send(self, kind: str, user_id: str, title: str, body: str, data: dict[str, str]) -> bool:
        try:
            await self.transport.send_to_user(user_id, title, body, data)
        except Exception as e:
            record_notification(kind, sent=False)
            logger.warning("waitlist_notification_failed", kind=kind, user_id=user_id, error=str(e))
            return False
        record_notification(kind, sent=True)
        return True
