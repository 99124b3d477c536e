"""Services package."""

from recurring_engine.services.notifications import (
    ChannelNotConfiguredError,
    ChannelSendError,
    ChannelSender,
    LoggingChannelSender,
    NotificationDispatcher,
    NotificationError,
)
from recurring_engine.services.storage import (
    AuditStorageInterface,
    BillingRepository,
    ConflictError,
    ConnectionError,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryRepository,
    NotFoundError,
    RuleRecord,
    RuleRepository,
    StorageError,
)

__all__ = [
    # Notification services
    "ChannelNotConfiguredError",
    "ChannelSendError",
    "ChannelSender",
    "LoggingChannelSender",
    "NotificationDispatcher",
    "NotificationError",
    # Storage services
    "AuditStorageInterface",
    "BillingRepository",
    "ConflictError",
    "ConnectionError",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryRepository",
    "NotFoundError",
    "RuleRecord",
    "RuleRepository",
    "StorageError",
]
