"""
Abstract Storage Interface

DESIGN DECISION: The engine never talks to a database client directly.
Repositories are injected into every component, which allows us to:
1. Run the same engine against the product database or a JSON snapshot
2. Use in-memory storage for testing
3. Keep scheduling logic decoupled from the storage format

The contract is small on purpose: exactly the reads and guarded writes
the generation engine and the reminder scheduler need. Exactly-once
behaviour rests on two guards every implementation must honour:
- a unique dedup key on generated occurrences (DuplicateError)
- a conditional write on rule generation state (ConflictError)
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Optional, Union
from uuid import UUID

from recurring_engine.models.audit import AuditEvent
from recurring_engine.models.billing import (
    CreditCardBilling,
    NotificationPreference,
    ReminderEvent,
    ReminderEventKey,
)
from recurring_engine.models.recurrence import RecurrenceRule
from recurring_engine.models.results import ConfirmationRequest, TransactionIntent


# A stored rule as the repository hands it out: typed already, or a raw
# row still to be normalised by RecurrenceRuleValidator.
RuleRecord = Union[RecurrenceRule, dict[str, Any]]


class RuleRepository(ABC):
    """
    Recurrence rules, their generation state and generated occurrences.
    """

    @abstractmethod
    async def list_active_rules(self) -> list[RuleRecord]:
        """
        List rules that are active and not paused.

        Returns:
            Raw rows or parsed rules; the engine validates either
        """
        pass

    async def list_holidays(self) -> set[date]:
        """
        Non-business days besides weekends.

        Stores without a holiday table need not override this.
        """
        return set()

    @abstractmethod
    async def save_transaction_intent(self, intent: TransactionIntent) -> bool:
        """
        Persist a generated transaction.

        Raises:
            DuplicateError: If intent.dedup_key was already recorded
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def save_confirmation_request(self, request: ConfirmationRequest) -> bool:
        """
        Persist a pending confirmation request.

        Raises:
            DuplicateError: If request.dedup_key was already recorded
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def advance_rule_state(
        self,
        rule_id: str,
        expected_next_execution_date: Optional[date],
        last_generated_date: date,
        next_execution_date: date,
    ) -> bool:
        """
        Move a rule's generation state forward.

        The write only applies if the stored next_execution_date still
        equals expected_next_execution_date (compare-and-set).

        Raises:
            ConflictError: If another invocation moved the state first
            NotFoundError: If the rule does not exist
        """
        pass


class BillingRepository(ABC):
    """
    Credit cards, notification preferences and reminder dedup records.
    """

    @abstractmethod
    async def list_credit_cards(self) -> list[CreditCardBilling]:
        """List cards whose owning user is active."""
        pass

    @abstractmethod
    async def get_notification_preferences(
        self,
        user_id: str,
    ) -> Optional[NotificationPreference]:
        """
        Get a user's notification preferences.

        Returns:
            The preferences, or None if the user never set any
        """
        pass

    @abstractmethod
    async def claim_reminder(self, event: ReminderEvent, stale_before: datetime) -> bool:
        """
        Record a PENDING reminder event unless one exists for its key.

        An existing PENDING event claimed before stale_before belongs to
        an invocation that died mid-send and is taken over.

        Returns:
            True if this invocation now owns the send
        """
        pass

    @abstractmethod
    async def complete_reminder(self, event: ReminderEvent) -> bool:
        """
        Store the final (SENT or FAILED) state of a claimed reminder.

        Raises:
            NotFoundError: If the event was never claimed
        """
        pass

    @abstractmethod
    async def get_reminder_event(self, key: ReminderEventKey) -> Optional[ReminderEvent]:
        """Get the dedup record for a key, if any."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events of one invocation, in chronological order.
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific rule, card or run.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConflictError(StorageError):
    """A conditional write found the stored state already changed."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
