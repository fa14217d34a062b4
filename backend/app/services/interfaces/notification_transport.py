"""
Notification transport interface.
Delivery is best-effort; callers never consume a return value.
"""

from abc import ABC, abstractmethod


class NotificationTransport(ABC):
    """
    Interface for delivering a message to every device of a user.

    Implementations:
    - ExpoPushTransport: Expo push API over HTTP
    - LoggingTransport: logs the message and drops it (push disabled)
    """

    @abstractmethod
    async def send_to_user(self, user_id: str, title: str, body: str, data: dict[str, str]) -> None:
        """
        Send one message to all devices registered for a user.

        Args:
            user_id: Recipient
            title: Notification title
            body: Notification body
            data: String key/value payload for deep links

        Raises on transport failure; the dispatcher swallows and logs it.
        """
        pass
