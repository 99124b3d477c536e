"""
Channel Sender Interface

DESIGN DECISION: Push, Telegram and WhatsApp are variants of one
capability. Which of them a user receives is decided by their
NotificationPreference; the dispatcher never inspects which
credentials happen to be configured.

Concrete transports live outside this package and implement
ChannelSender.
"""

from abc import ABC, abstractmethod

from recurring_engine.models.billing import Channel
from recurring_engine.models.results import NotificationPayload


class ChannelSender(ABC):
    """
    Delivers a notification payload to one user on one channel.
    """

    @abstractmethod
    async def send(
        self,
        user_id: str,
        channel: Channel,
        payload: NotificationPayload,
    ) -> bool:
        """
        Send a notification.

        Args:
            user_id: Recipient
            channel: Channel being delivered on
            payload: Channel-agnostic content; payload.idempotency_key
                     is stable across retries of the same send

        Returns:
            True if the transport accepted the message, False otherwise

        May raise any exception on transport failure; the dispatcher
        treats it like a False result.
        """
        pass


class NotificationError(Exception):
    """Base exception for notification delivery."""
    pass


class ChannelSendError(NotificationError):
    """A send attempt failed. Retryable."""

    def __init__(self, channel: Channel, message: str):
        self.channel = channel
        super().__init__(message)


class ChannelNotConfiguredError(NotificationError):
    """No sender is registered for the channel. Not retried."""

    def __init__(self, channel: Channel):
        self.channel = channel
        super().__init__(f"No sender configured for channel '{channel.value}'")
