"""Channel sender that only writes the message to the structured log (dry runs)."""

import structlog

from recurring_engine.models.billing import Channel
from recurring_engine.models.results import NotificationPayload
from recurring_engine.services.notifications.interface import ChannelSender


class LoggingChannelSender(ChannelSender):
    """Accepts every message and records it in `sent`."""

    def __init__(self):
        self.sent: list[tuple[str, Channel, NotificationPayload]] = []
        self._logger = structlog.get_logger(__name__)

    async def send(
        self,
        user_id: str,
        channel: Channel,
        payload: NotificationPayload,
    ) -> bool:
        self.sent.append((user_id, channel, payload))
        self._logger.info(
            "notification_logged",
            user_id=user_id,
            channel=channel.value,
            kind=payload.kind.value,
            title=payload.title,
            idempotency_key=payload.idempotency_key,
        )
        return True
