"""
Notification Services Package

Channel sender contract, the retrying dispatcher, and a log-only
sender for dry runs.
"""

from recurring_engine.services.notifications.dispatcher import NotificationDispatcher
from recurring_engine.services.notifications.interface import (
    ChannelNotConfiguredError,
    ChannelSendError,
    ChannelSender,
    NotificationError,
)
from recurring_engine.services.notifications.logging_sender import LoggingChannelSender

__all__ = [
    "ChannelSender",
    "LoggingChannelSender",
    "NotificationDispatcher",
    # Exceptions
    "ChannelNotConfiguredError",
    "ChannelSendError",
    "NotificationError",
]
