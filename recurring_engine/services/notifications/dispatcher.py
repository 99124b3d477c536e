"""
Notification Dispatcher

Fans a payload out across channels with a bounded retry discipline:
- every attempt is cut off after send_timeout_seconds
- failed or timed-out attempts are retried with exponential backoff
  up to max_attempts, then reported as failed
- the payload (and its idempotency key) is identical on every attempt

A failed send is never raised to the caller and never retried beyond
the bound; the DispatchOutcome says what happened.
"""

import asyncio
from typing import Mapping, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from recurring_engine.config import DispatchSettings, get_settings
from recurring_engine.models.billing import Channel
from recurring_engine.models.results import DispatchOutcome, NotificationPayload
from recurring_engine.services.notifications.interface import (
    ChannelNotConfiguredError,
    ChannelSendError,
    ChannelSender,
)


class NotificationDispatcher:
    """
    Delivers payloads through the registered channel senders.
    """

    def __init__(
        self,
        senders: Mapping[Channel, ChannelSender],
        settings: Optional[DispatchSettings] = None,
    ):
        self._senders = dict(senders)
        self._settings = settings or get_settings().dispatch
        self._logger = structlog.get_logger(__name__)

    @property
    def channels(self) -> list[Channel]:
        """Channels that have a sender registered."""
        return list(self._senders)

    async def _send_once(
        self,
        sender: ChannelSender,
        user_id: str,
        channel: Channel,
        payload: NotificationPayload,
    ) -> None:
        try:
            accepted = await asyncio.wait_for(
                sender.send(user_id, channel, payload),
                timeout=self._settings.send_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise ChannelSendError(
                channel,
                f"Send timed out after {self._settings.send_timeout_seconds}s"
            )
        except Exception as e:
            raise ChannelSendError(channel, f"Send raised {type(e).__name__}: {e}") from e

        if not accepted:
            raise ChannelSendError(channel, "Sender reported failure")

    async def dispatch(
        self,
        user_id: str,
        channel: Channel,
        payload: NotificationPayload,
    ) -> DispatchOutcome:
        """
        Deliver one payload on one channel.

        Returns:
            DispatchOutcome with the number of attempts made
        """
        sender = self._senders.get(channel)
        if sender is None:
            error = ChannelNotConfiguredError(channel)
            self._logger.warning(
                "channel_not_configured",
                user_id=user_id,
                channel=channel.value,
                idempotency_key=payload.idempotency_key,
            )
            return DispatchOutcome(
                channel=channel,
                success=False,
                attempts=0,
                error_message=str(error),
            )

        attempts = 0
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=wait_exponential(
                multiplier=self._settings.backoff_multiplier,
                min=self._settings.backoff_min_seconds,
                max=self._settings.backoff_max_seconds,
            ),
            retry=retry_if_exception_type(ChannelSendError),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    await self._send_once(sender, user_id, channel, payload)
        except (ChannelSendError, RetryError) as e:
            self._logger.warning(
                "channel_send_failed",
                user_id=user_id,
                channel=channel.value,
                attempts=attempts,
                idempotency_key=payload.idempotency_key,
                error=str(e),
            )
            return DispatchOutcome(
                channel=channel,
                success=False,
                attempts=attempts,
                error_message=str(e),
            )

        return DispatchOutcome(channel=channel, success=True, attempts=attempts)

    async def fan_out(
        self,
        user_id: str,
        channels: list[Channel],
        payload: NotificationPayload,
    ) -> list[DispatchOutcome]:
        """Deliver one payload on several channels concurrently."""
        return list(await asyncio.gather(
            *(self.dispatch(user_id, channel, payload) for channel in channels)
        ))
