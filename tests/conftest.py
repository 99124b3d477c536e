"""Shared fixtures: settings without backoff delays, rule rows and scripted senders."""

import asyncio
from typing import Union

import pytest

from recurring_engine.config import DispatchSettings, ReminderSettings, SchedulerSettings
from recurring_engine.models import Channel, NotificationPayload, RecurrenceRule
from recurring_engine.services import (
    ChannelSender,
    InMemoryAuditStorage,
    InMemoryRepository,
    NotificationDispatcher,
)
from recurring_engine.audit import AuditLogger
from recurring_engine.validation import RecurrenceRuleValidator


def _rule_row(**overrides) -> dict:
    row = {
        "id": "rule-1",
        "user_id": "user-1",
        "name": "Rent",
        "amount": "1000.00",
        "currency": "ARS",
        "type": "expense",
        "account_id": "acc-1",
        "category_id": "cat-housing",
        "frequency": {"type": "monthly", "day": 31, "interval": 1},
        "weekend_handling": "none",
        "start_date": "2024-01-31",
        "end_date": None,
        "creation_mode": "automatic",
        "is_active": True,
        "is_paused": False,
        "is_credit_card_recurring": False,
        "last_generated_date": None,
        "next_execution_date": None,
    }
    row.update(overrides)
    return row


class ScriptedSender(ChannelSender):
    """
    Replays a script of results, one per call; the last entry repeats.

    Entries: True/False (returned), an Exception instance (raised),
    or "hang" (sleeps past any test timeout).
    """

    def __init__(self, script: list[Union[bool, Exception, str]] = None):
        self._script = list(script or [True])
        self.calls: list[tuple[str, Channel, NotificationPayload]] = []

    async def send(self, user_id, channel, payload) -> bool:
        self.calls.append((user_id, channel, payload))
        index = min(len(self.calls), len(self._script)) - 1
        result = self._script[index]
        if result == "hang":
            await asyncio.sleep(5)
            return True
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def rule_row():
    """Factory for raw rule rows as the store returns them."""
    return _rule_row


@pytest.fixture
def make_rule():
    """Factory for parsed RecurrenceRule objects."""
    validator = RecurrenceRuleValidator()

    def factory(**overrides) -> RecurrenceRule:
        return validator.parse(_rule_row(**overrides))

    return factory


@pytest.fixture
def scheduler_settings() -> SchedulerSettings:
    return SchedulerSettings(timezone="UTC", backfill_cap=12, max_concurrency=4)


@pytest.fixture
def dispatch_settings() -> DispatchSettings:
    return DispatchSettings(
        send_timeout_seconds=0.05,
        max_attempts=3,
        backoff_multiplier=0,
        backoff_min_seconds=0,
        backoff_max_seconds=0,
    )


@pytest.fixture
def reminder_settings() -> ReminderSettings:
    return ReminderSettings(lead_days=1, claim_ttl_minutes=15)


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def sender_factory():
    return ScriptedSender


@pytest.fixture
def sender() -> ScriptedSender:
    return ScriptedSender()


@pytest.fixture
def dispatcher(sender, dispatch_settings) -> NotificationDispatcher:
    return NotificationDispatcher(
        {channel: sender for channel in Channel},
        dispatch_settings,
    )
