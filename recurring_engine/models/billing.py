"""
Credit Card Billing and Notification Models

Cards, the billing cycle the due-date resolver computes for them,
per-user notification preferences, and the reminder dedup record.
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Channel(str, Enum):
    """
    Notification delivery channels.

    The core treats them uniformly; which ones a user receives is
    decided by NotificationPreference, not by which credentials exist.
    """
    PUSH = "push"
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"


class ReminderStatus(str, Enum):
    """Lifecycle of a reminder dedup record."""
    PENDING = "pending"  # Claimed, send in flight
    SENT = "sent"
    FAILED = "failed"    # Retries exhausted; kept so we do not retry forever


class CreditCardBilling(BaseModel):
    """Billing-cycle configuration of one credit card."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    name: str = Field(default="", max_length=200)
    currency: str = Field(default="ARS", min_length=3, max_length=3)
    closing_day: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Statement closing day of month"
    )
    due_day: int = Field(
        ...,
        ge=1,
        le=31,
        description="Payment due day of month"
    )


class BillingCycle(BaseModel):
    """
    Result of resolving a card's current cycle.

    closing_date and the statement period are informational; reminder
    timing depends on due_date alone.
    """
    model_config = ConfigDict(frozen=True)

    card_id: str
    reference_date: date
    due_date: date
    closing_date: Optional[date] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None

    def reminder_date(self, lead_days: int = 1) -> date:
        return self.due_date - timedelta(days=lead_days)


class NotificationPreference(BaseModel):
    """Per-user channel enablement and the hour reminders may fire."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    notify_push: bool = False
    notify_telegram: bool = False
    notify_whatsapp: bool = False
    notification_hour: int = Field(default=9, ge=0, le=23)

    @property
    def enabled_channels(self) -> list[Channel]:
        """Enabled channels in a stable order."""
        channels = []
        if self.notify_push:
            channels.append(Channel.PUSH)
        if self.notify_telegram:
            channels.append(Channel.TELEGRAM)
        if self.notify_whatsapp:
            channels.append(Channel.WHATSAPP)
        return channels

    def is_enabled(self, channel: Channel) -> bool:
        return channel in self.enabled_channels


class ReminderEventKey(BaseModel):
    """Dedup key: one reminder per card, cycle and channel."""
    model_config = ConfigDict(frozen=True)

    card_id: str
    due_date: date
    channel: Channel

    def as_string(self) -> str:
        return f"{self.card_id}:{self.due_date.isoformat()}:{self.channel.value}"


class ReminderEvent(BaseModel):
    """
    Dedup record for a due-date reminder.

    Its existence means the reminder for this cycle and channel was
    sent or attempted. A PENDING record older than the claim lease
    belongs to an invocation that died mid-send and may be taken over.
    """

    key: ReminderEventKey
    user_id: str
    status: ReminderStatus = ReminderStatus.PENDING
    attempts: int = Field(default=0, ge=0)
    claimed_at: datetime
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.status in (ReminderStatus.SENT, ReminderStatus.FAILED)
