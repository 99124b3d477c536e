"""
Engine Output Models

What the generation engine and the reminder scheduler hand back:
transaction intents, confirmation requests, notification payloads,
dispatch outcomes and the structured per-invocation summaries.

CRITICAL: Every intent and request carries a deterministic dedup key
(rule_id, occurrence_date). The repository rejects a second write with
the same key, which is what makes re-invocation safe.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from recurring_engine.models.billing import Channel
from recurring_engine.models.recurrence import (
    CreationMode,
    RecurrenceRule,
    TransactionType,
    TransferTarget,
)


def occurrence_dedup_key(rule_id: str, occurrence_date: date) -> str:
    """Deterministic key for one occurrence of one rule."""
    return f"{rule_id}:{occurrence_date.isoformat()}"


class OccurrenceStatus(str, Enum):
    CONFIRMED = "confirmed"  # Transaction written
    PENDING = "pending"      # Waiting for the user to confirm or skip


# =============================================================================
# GENERATION OUTPUTS
# =============================================================================

class _OccurrenceBase(BaseModel):
    """Fields shared by intents and confirmation requests."""

    id: UUID = Field(default_factory=uuid4)
    dedup_key: str
    rule_id: str
    user_id: str
    occurrence_date: date
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    type: TransactionType
    amount: Decimal
    currency: str
    note: str

    # Movement side
    account_id: Optional[str] = None
    category_id: Optional[str] = None

    # Transfer side
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    to_amount: Optional[Decimal] = None

    is_credit_card_payment: bool = False

    @classmethod
    def _fields_from_rule(cls, rule: RecurrenceRule, occurrence_date: date) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "dedup_key": occurrence_dedup_key(rule.id, occurrence_date),
            "rule_id": rule.id,
            "user_id": rule.user_id,
            "occurrence_date": occurrence_date,
            "type": rule.transaction_type,
            "amount": rule.amount,
            "currency": rule.currency,
            "note": rule.name,
            "is_credit_card_payment": rule.is_credit_card_recurring,
        }
        target = rule.target
        if isinstance(target, TransferTarget):
            fields["from_account_id"] = target.from_account_id
            fields["to_account_id"] = target.to_account_id
            fields["to_amount"] = target.to_amount or rule.amount
        else:
            fields["account_id"] = target.account_id
            fields["category_id"] = target.category_id
        return fields


class TransactionIntent(_OccurrenceBase):
    """A ready-to-persist transaction produced by an automatic rule."""

    status: OccurrenceStatus = OccurrenceStatus.CONFIRMED

    @classmethod
    def from_rule(cls, rule: RecurrenceRule, occurrence_date: date) -> 'TransactionIntent':
        return cls(**cls._fields_from_rule(rule, occurrence_date))


class ConfirmationRequest(_OccurrenceBase):
    """
    A due occurrence waiting for the user.

    Produced instead of a transaction for the two confirmation modes
    and handed to the notification dispatcher.
    """

    status: OccurrenceStatus = OccurrenceStatus.PENDING
    creation_mode: CreationMode
    channels: list[Channel] = Field(
        default_factory=list,
        description="Channels the request was routed to"
    )

    @classmethod
    def from_rule(cls, rule: RecurrenceRule, occurrence_date: date) -> 'ConfirmationRequest':
        return cls(
            creation_mode=rule.creation_mode,
            **cls._fields_from_rule(rule, occurrence_date),
        )


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class NotificationKind(str, Enum):
    DUE_DATE_REMINDER = "due_date_reminder"
    CONFIRMATION_REQUEST = "confirmation_request"


class NotificationPayload(BaseModel):
    """
    Channel-agnostic notification content.

    idempotency_key stays the same across every retry of one logical
    send so a transport that supports it can drop duplicates.
    """

    kind: NotificationKind
    title: str
    body: str
    idempotency_key: str
    data: dict[str, Any] = Field(default_factory=dict)


class DispatchOutcome(BaseModel):
    """Result of delivering one payload on one channel."""

    channel: Channel
    success: bool
    attempts: int = Field(ge=0)
    error_message: Optional[str] = None


# =============================================================================
# PER-ITEM ERRORS AND WARNINGS
# =============================================================================

class ItemError(BaseModel):
    """A failure isolated to one rule, card or send."""

    item_type: str = Field(..., description="'rule', 'card' or 'send'")
    item_id: str
    kind: str = Field(..., description="e.g. 'malformed_rule', 'storage', 'send_failed'")
    message: str


class ItemWarning(BaseModel):
    """A non-fatal condition the operator should see."""

    item_type: str
    item_id: str
    kind: str = Field(..., description="e.g. 'backfill_cap', 'clock_anomaly'")
    message: str


# =============================================================================
# SUMMARIES
# =============================================================================

class GenerationSummary(BaseModel):
    """Outcome of one generation invocation."""

    correlation_id: UUID
    run_at: datetime
    today: date
    rules_checked: int = 0
    generated: list[TransactionIntent] = Field(default_factory=list)
    requests_queued: list[ConfirmationRequest] = Field(default_factory=list)
    coalesced: int = Field(
        default=0,
        description="Occurrences already recorded by an earlier or concurrent run"
    )
    warnings: list[ItemWarning] = Field(default_factory=list)
    errors: list[ItemError] = Field(default_factory=list)

    def to_trigger_response(self) -> dict:
        """The structured summary returned to the external trigger."""
        return {
            "correlation_id": str(self.correlation_id),
            "today": self.today.isoformat(),
            "rules_checked": self.rules_checked,
            "generated": len(self.generated),
            "requests_queued": len(self.requests_queued),
            "coalesced": self.coalesced,
            "warnings": [w.model_dump() for w in self.warnings],
            "errors": [e.model_dump() for e in self.errors],
        }


class ReminderSent(BaseModel):
    card_id: str
    user_id: str
    channel: Channel
    due_date: date
    attempts: int


class ReminderSkip(BaseModel):
    card_id: str
    user_id: str
    channel: Optional[Channel] = None
    reason: str = Field(
        ...,
        description="'outside_notification_hour', 'no_preferences', 'no_channels', 'already_sent', 'already_failed', 'in_flight'"
    )


class ReminderSummary(BaseModel):
    """Outcome of one reminder invocation."""

    correlation_id: UUID
    run_at: datetime
    today: date
    hour: int
    cards_checked: int = 0
    sent: list[ReminderSent] = Field(default_factory=list)
    skipped: list[ReminderSkip] = Field(default_factory=list)
    errors: list[ItemError] = Field(default_factory=list)

    def to_trigger_response(self) -> dict:
        return {
            "correlation_id": str(self.correlation_id),
            "today": self.today.isoformat(),
            "hour": self.hour,
            "cards_checked": self.cards_checked,
            "reminders_sent": len(self.sent),
            "skipped": len(self.skipped),
            "errors": [e.model_dump() for e in self.errors],
        }
