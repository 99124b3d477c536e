"""
In-Memory Storage Implementation

Backs the test suite and the dry-run entry point. Rules are kept as
raw rows, the same shape the product database returns, so loading a
snapshot exercises the validator exactly like a real run does.

The asyncio.Lock stands in for the database's unique constraints and
conditional updates: every check-then-write happens under it, so
overlapping invocations in one event loop see the same guarantees
they would get from the store.
"""

import asyncio
import copy
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from recurring_engine.models.audit import AuditEvent
from recurring_engine.models.billing import (
    CreditCardBilling,
    NotificationPreference,
    ReminderEvent,
    ReminderEventKey,
    ReminderStatus,
)
from recurring_engine.models.recurrence import RecurrenceRule
from recurring_engine.models.results import ConfirmationRequest, TransactionIntent
from recurring_engine.services.storage.interface import (
    AuditStorageInterface,
    BillingRepository,
    ConflictError,
    DuplicateError,
    NotFoundError,
    RuleRepository,
)


def _parse_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


class InMemoryRepository(RuleRepository, BillingRepository):
    """
    Rule and billing repository held in process memory.
    """

    def __init__(
        self,
        rules: Optional[list] = None,
        credit_cards: Optional[list[CreditCardBilling]] = None,
        preferences: Optional[list[NotificationPreference]] = None,
        holidays: Optional[set[date]] = None,
        inactive_user_ids: Optional[set[str]] = None,
    ):
        self._lock = asyncio.Lock()

        self._rules: dict[str, dict[str, Any]] = {}
        for rule in rules or []:
            self.add_rule(rule)

        self._cards = list(credit_cards or [])
        self._preferences = {p.user_id: p for p in preferences or []}
        self._holidays = set(holidays or set())
        self._inactive_user_ids = set(inactive_user_ids or set())

        self._intents: dict[str, TransactionIntent] = {}
        self._requests: dict[str, ConfirmationRequest] = {}
        self._reminders: dict[str, ReminderEvent] = {}

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any]) -> 'InMemoryRepository':
        """
        Build a repository from a JSON snapshot.

        Expected keys (all optional): rules, credit_cards,
        notification_preferences, holidays, inactive_user_ids.
        """
        return cls(
            rules=snapshot.get("rules", []),
            credit_cards=[
                CreditCardBilling.model_validate(card)
                for card in snapshot.get("credit_cards", [])
            ],
            preferences=[
                NotificationPreference.model_validate(pref)
                for pref in snapshot.get("notification_preferences", [])
            ],
            holidays={_parse_date(d) for d in snapshot.get("holidays", [])},
            inactive_user_ids=set(snapshot.get("inactive_user_ids", [])),
        )

    # -------------------------------------------------------------------------
    # Seeding and inspection
    # -------------------------------------------------------------------------

    def add_rule(self, rule) -> None:
        if isinstance(rule, RecurrenceRule):
            row = rule.model_dump(mode="json", by_alias=True)
        else:
            row = copy.deepcopy(rule)
        self._rules[str(row["id"])] = row

    def get_rule_row(self, rule_id: str) -> dict[str, Any]:
        if rule_id not in self._rules:
            raise NotFoundError(f"Rule not found: {rule_id}")
        return copy.deepcopy(self._rules[rule_id])

    @property
    def intents(self) -> list[TransactionIntent]:
        return sorted(self._intents.values(), key=lambda i: (i.rule_id, i.occurrence_date))

    @property
    def confirmation_requests(self) -> list[ConfirmationRequest]:
        return sorted(self._requests.values(), key=lambda r: (r.rule_id, r.occurrence_date))

    @property
    def reminder_events(self) -> list[ReminderEvent]:
        return list(self._reminders.values())

    # -------------------------------------------------------------------------
    # RuleRepository
    # -------------------------------------------------------------------------

    async def list_active_rules(self) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(row)
            for row in self._rules.values()
            if row.get("is_active", True) and not row.get("is_paused", False)
        ]

    async def list_holidays(self) -> set[date]:
        return set(self._holidays)

    async def save_transaction_intent(self, intent: TransactionIntent) -> bool:
        async with self._lock:
            if intent.dedup_key in self._intents:
                raise DuplicateError(f"Occurrence already recorded: {intent.dedup_key}")
            self._intents[intent.dedup_key] = intent
        return True

    async def save_confirmation_request(self, request: ConfirmationRequest) -> bool:
        async with self._lock:
            if request.dedup_key in self._requests:
                raise DuplicateError(f"Occurrence already recorded: {request.dedup_key}")
            self._requests[request.dedup_key] = request
        return True

    async def advance_rule_state(
        self,
        rule_id: str,
        expected_next_execution_date: Optional[date],
        last_generated_date: date,
        next_execution_date: date,
    ) -> bool:
        async with self._lock:
            row = self._rules.get(rule_id)
            if row is None:
                raise NotFoundError(f"Rule not found: {rule_id}")

            stored = _parse_date(row.get("next_execution_date"))
            if stored != expected_next_execution_date:
                raise ConflictError(
                    f"Rule {rule_id} next_execution_date is {stored}, "
                    f"expected {expected_next_execution_date}"
                )

            row["last_generated_date"] = last_generated_date.isoformat()
            row["next_execution_date"] = next_execution_date.isoformat()
        return True

    # -------------------------------------------------------------------------
    # BillingRepository
    # -------------------------------------------------------------------------

    async def list_credit_cards(self) -> list[CreditCardBilling]:
        return [
            card for card in self._cards
            if card.user_id not in self._inactive_user_ids
        ]

    async def get_notification_preferences(
        self,
        user_id: str,
    ) -> Optional[NotificationPreference]:
        return self._preferences.get(user_id)

    async def claim_reminder(self, event: ReminderEvent, stale_before: datetime) -> bool:
        key = event.key.as_string()
        async with self._lock:
            existing = self._reminders.get(key)
            if existing is not None:
                abandoned = (
                    existing.status == ReminderStatus.PENDING
                    and existing.claimed_at < stale_before
                )
                if not abandoned:
                    return False
            self._reminders[key] = event
        return True

    async def complete_reminder(self, event: ReminderEvent) -> bool:
        key = event.key.as_string()
        async with self._lock:
            if key not in self._reminders:
                raise NotFoundError(f"Reminder was never claimed: {key}")
            self._reminders[key] = event
        return True

    async def get_reminder_event(self, key: ReminderEventKey) -> Optional[ReminderEvent]:
        return self._reminders.get(key.as_string())


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return sorted(
            (e for e in self._events if e.correlation_id == correlation_id),
            key=lambda e: e.timestamp,
        )

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return sorted(
            (e for e in self._events
             if e.entity_type == entity_type and e.entity_id == entity_id),
            key=lambda e: e.timestamp,
        )
