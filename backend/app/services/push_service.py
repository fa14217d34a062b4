"""
Push delivery through the Expo push API.
Each user may have several devices; one message is posted per device token.
If PUSH_ENABLED is off, LoggingTransport is used and messages are only logged.
"""

from typing import Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.models.push_token import PushToken
from app.services.interfaces.notification_transport import NotificationTransport

logger = get_logger(__name__)


class PushDeliveryError(Exception):
    """The push API rejected or failed the request."""


class ExpoPushTransport(NotificationTransport):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.client = client or httpx.AsyncClient(timeout=self.settings.PUSH_TIMEOUT_SECONDS)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def tokens_for_user(self, user_id: str) -> list[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PushToken.token).where(PushToken.user_id == user_id).order_by(PushToken.id)
            )
            return list(result.scalars().all())

    async def send_to_user(self, user_id: str, title: str, body: str, data: dict[str, str]) -> None:
        tokens = await self.tokens_for_user(user_id)
        if not tokens:
            logger.debug("push_skipped_no_tokens", user_id=user_id)
            return

        messages = [
            {"to": token, "title": title, "body": body, "data": data, "sound": "default"}
            for token in tokens
        ]
        try:
            response = await self.client.post(
                self.settings.PUSH_API_URL,
                json=messages,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PushDeliveryError(f"push request failed for user {user_id}: {e}") from e

        # Per-ticket errors (e.g. DeviceNotRegistered) do not fail the whole send
        tickets = response.json().get("data", [])
        errors = [t for t in tickets if isinstance(t, dict) and t.get("status") == "error"]
        if errors:
            logger.warning(
                "push_tickets_rejected",
                user_id=user_id,
                rejected=len(errors),
                total=len(messages),
                details=[t.get("details") for t in errors],
            )
        else:
            logger.debug("push_sent", user_id=user_id, devices=len(messages))


class LoggingTransport(NotificationTransport):
    """No-op delivery for environments without push credentials."""

    async def send_to_user(self, user_id: str, title: str, body: str, data: dict[str, str]) -> None:
        logger.info("push_disabled_message", user_id=user_id, title=title, type=data.get("type"))
