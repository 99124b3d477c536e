"""Tests for the due-date reminder scheduler."""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from recurring_engine.config import SchedulerSettings
from recurring_engine.engine import ReminderScheduler
from recurring_engine.models import (
    Channel,
    CreditCardBilling,
    NotificationKind,
    NotificationPreference,
    ReminderEvent,
    ReminderEventKey,
    ReminderStatus,
)
from recurring_engine.services import InMemoryRepository, NotificationDispatcher

pytestmark = pytest.mark.asyncio

# Day before the card's due date (June 15), at the user's notification hour
REMINDER_TIME = datetime(2024, 6, 14, 9, 0)


def _card(**overrides) -> CreditCardBilling:
    fields = dict(id="card-1", user_id="user-1", name="Visa", due_day=15)
    fields.update(overrides)
    return CreditCardBilling(**fields)


def _prefs(**overrides) -> NotificationPreference:
    fields = dict(user_id="user-1", notify_push=True, notify_telegram=True, notification_hour=9)
    fields.update(overrides)
    return NotificationPreference(**fields)


@pytest.fixture
def scheduler_factory(dispatcher, audit_logger, scheduler_settings, reminder_settings):
    def factory(repository, **kwargs) -> ReminderScheduler:
        kwargs.setdefault("dispatcher", dispatcher)
        kwargs.setdefault("audit_logger", audit_logger)
        kwargs.setdefault("scheduler_settings", scheduler_settings)
        kwargs.setdefault("reminder_settings", reminder_settings)
        return ReminderScheduler(repository, **kwargs)
    return factory


class TestReminderTiming:

    async def test_sends_on_lead_day_per_channel(self, scheduler_factory, sender):
        """Test one reminder per enabled channel on the day before the due date."""
        repository = InMemoryRepository(credit_cards=[_card()], preferences=[_prefs()])
        summary = await scheduler_factory(repository).run(REMINDER_TIME)

        assert {s.channel for s in summary.sent} == {Channel.PUSH, Channel.TELEGRAM}
        assert all(s.due_date == date(2024, 6, 15) for s in summary.sent)
        assert summary.errors == []
        assert len(sender.calls) == 2
        payload = sender.calls[0][2]
        assert payload.kind == NotificationKind.DUE_DATE_REMINDER
        assert "2024-06-15" in payload.body

    async def test_not_lead_day(self, scheduler_factory, sender):
        """Test that nothing happens on other days."""
        repository = InMemoryRepository(credit_cards=[_card()], preferences=[_prefs()])
        summary = await scheduler_factory(repository).run(datetime(2024, 6, 13, 9, 0))
        assert summary.sent == []
        assert summary.skipped == []
        assert sender.calls == []

    async def test_outside_notification_hour(self, scheduler_factory, sender):
        """Test that the user's notification hour gates the send."""
        repository = InMemoryRepository(credit_cards=[_card()], preferences=[_prefs()])
        summary = await scheduler_factory(repository).run(datetime(2024, 6, 14, 10, 0))
        assert summary.sent == []
        assert [s.reason for s in summary.skipped] == ["outside_notification_hour"]
        assert repository.reminder_events == []

    async def test_no_preferences(self, scheduler_factory):
        """Test that users without preferences are skipped."""
        repository = InMemoryRepository(credit_cards=[_card()])
        summary = await scheduler_factory(repository).run(REMINDER_TIME)
        assert [s.reason for s in summary.skipped] == ["no_preferences"]

    async def test_no_enabled_channels(self, scheduler_factory):
        """Test that users with every channel off are skipped."""
        repository = InMemoryRepository(
            credit_cards=[_card()],
            preferences=[_prefs(notify_push=False, notify_telegram=False)],
        )
        summary = await scheduler_factory(repository).run(REMINDER_TIME)
        assert [s.reason for s in summary.skipped] == ["no_channels"]

    async def test_inactive_owner_not_checked(self, scheduler_factory, sender):
        """Test that cards of inactive users are not reminded."""
        repository = InMemoryRepository(
            credit_cards=[_card()],
            preferences=[_prefs()],
            inactive_user_ids={"user-1"},
        )
        summary = await scheduler_factory(repository).run(REMINDER_TIME)
        assert summary.cards_checked == 0
        assert sender.calls == []

    async def test_local_time_in_configured_zone(self, scheduler_factory, sender):
        """Test that today and the hour come from the scheduling timezone."""
        repository = InMemoryRepository(credit_cards=[_card()], preferences=[_prefs()])
        scheduler = scheduler_factory(
            repository,
            scheduler_settings=SchedulerSettings(timezone="America/Argentina/Buenos_Aires"),
        )
        # 12:00 UTC is 09:00 in Buenos Aires (UTC-3)
        summary = await scheduler.run(datetime(2024, 6, 14, 12, 0, tzinfo=timezone.utc))
        assert summary.hour == 9
        assert len(summary.sent) == 2


class TestReminderDedup:

    async def test_twice_same_day_sends_once(self, scheduler_factory, sender):
        """Test that a second invocation on day 14 sends nothing new."""
        repository = InMemoryRepository(credit_cards=[_card()], preferences=[_prefs()])
        scheduler = scheduler_factory(repository)

        await scheduler.run(REMINDER_TIME)
        second = await scheduler.run(REMINDER_TIME + timedelta(minutes=30))

        assert second.sent == []
        assert {s.reason for s in second.skipped} == {"already_sent"}
        assert len(sender.calls) == 2
        assert all(e.status == ReminderStatus.SENT for e in repository.reminder_events)

    async def test_overlapping_invocations_send_once(self, scheduler_factory, sender):
        """Test that concurrent invocations deliver each channel once."""
        repository = InMemoryRepository(credit_cards=[_card()], preferences=[_prefs()])
        scheduler = scheduler_factory(repository)

        a, b = await asyncio.gather(scheduler.run(REMINDER_TIME), scheduler.run(REMINDER_TIME))

        assert len(a.sent) + len(b.sent) == 2
        assert len(sender.calls) == 2

    async def test_fresh_claim_is_in_flight(self, scheduler_factory, sender):
        """Test that a recent unfinished claim blocks a second send."""
        repository = InMemoryRepository(credit_cards=[_card()], preferences=[_prefs(notify_telegram=False)])
        key = ReminderEventKey(card_id="card-1", due_date=date(2024, 6, 15), channel=Channel.PUSH)
        await repository.claim_reminder(
            ReminderEvent(key=key, user_id="user-1", claimed_at=datetime(2024, 6, 14, 8, 55, tzinfo=timezone.utc)),
            datetime(2024, 6, 14, 0, 0, tzinfo=timezone.utc),
        )

        summary = await scheduler_factory(repository).run(REMINDER_TIME)
        assert [s.reason for s in summary.skipped] == ["in_flight"]
        assert sender.calls == []

    async def test_stale_claim_is_retried(self, scheduler_factory, sender):
        """Test that a claim abandoned by a crashed invocation is taken over."""
        repository = InMemoryRepository(credit_cards=[_card()], preferences=[_prefs(notify_telegram=False)])
        key = ReminderEventKey(card_id="card-1", due_date=date(2024, 6, 15), channel=Channel.PUSH)
        await repository.claim_reminder(
            ReminderEvent(key=key, user_id="user-1", claimed_at=datetime(2024, 6, 14, 8, 0, tzinfo=timezone.utc)),
            datetime(2024, 6, 14, 0, 0, tzinfo=timezone.utc),
        )

        summary = await scheduler_factory(repository).run(REMINDER_TIME)
        assert len(summary.sent) == 1
        assert (await repository.get_reminder_event(key)).status == ReminderStatus.SENT


class TestReminderFailures:

    async def test_failed_send_recorded_and_not_retried(
        self, scheduler_factory, sender_factory, dispatch_settings,
    ):
        """Test that a terminal failure is reported once and recorded as FAILED."""
        failing = sender_factory([False])
        dispatcher = NotificationDispatcher({Channel.PUSH: failing}, dispatch_settings)
        repository = InMemoryRepository(credit_cards=[_card()], preferences=[_prefs(notify_telegram=False)])
        scheduler = scheduler_factory(repository, dispatcher=dispatcher)

        first = await scheduler.run(REMINDER_TIME)
        assert [e.kind for e in first.errors] == ["send_failed"]
        event = repository.reminder_events[0]
        assert event.status == ReminderStatus.FAILED
        assert event.attempts == dispatch_settings.max_attempts

        second = await scheduler.run(REMINDER_TIME + timedelta(minutes=5))
        assert second.errors == []
        assert [s.reason for s in second.skipped] == ["already_failed"]
        assert len(failing.calls) == dispatch_settings.max_attempts

    async def test_one_channel_failing_does_not_block_other(
        self, scheduler_factory, sender_factory, dispatch_settings,
    ):
        """Test per-channel isolation of failures."""
        dispatcher = NotificationDispatcher(
            {Channel.PUSH: sender_factory([True]), Channel.TELEGRAM: sender_factory([False])},
            dispatch_settings,
        )
        repository = InMemoryRepository(credit_cards=[_card()], preferences=[_prefs()])
        summary = await scheduler_factory(repository, dispatcher=dispatcher).run(REMINDER_TIME)
        assert [s.channel for s in summary.sent] == [Channel.PUSH]
        assert len(summary.errors) == 1

    async def test_card_error_isolated(self, scheduler_factory, sender):
        """Test that a storage failure on one user does not stop other cards."""
        from recurring_engine.services import StorageError

        class BrokenPreferences(InMemoryRepository):
            async def get_notification_preferences(self, user_id):
                if user_id == "user-2":
                    raise StorageError("timeout")
                return await super().get_notification_preferences(user_id)

        repository = BrokenPreferences(
            credit_cards=[_card(), _card(id="card-2", user_id="user-2")],
            preferences=[_prefs()],
        )
        summary = await scheduler_factory(repository).run(REMINDER_TIME)
        assert len(summary.sent) == 2
        assert [(e.item_id, e.kind) for e in summary.errors] == [("card-2", "storage")]

    async def test_trigger_response(self, scheduler_factory):
        """Test the structured summary returned to the trigger."""
        repository = InMemoryRepository(credit_cards=[_card()], preferences=[_prefs()])
        summary = await scheduler_factory(repository).run(REMINDER_TIME)
        response = summary.to_trigger_response()
        assert response["reminders_sent"] == 2
        assert response["hour"] == 9
        assert response["cards_checked"] == 1

    async def test_storage_error_on_one_channel_waits_for_others(self, scheduler_factory, dispatch_settings):
        """Test that a failed claim on one channel is reported while the other channel finishes inside the run."""
        from recurring_engine.services import ChannelSender, StorageError

        class SlowSender(ChannelSender):
            def __init__(self):
                self.delivered = []

            async def send(self, user_id, channel, payload) -> bool:
                await asyncio.sleep(0.01)
                self.delivered.append(channel)
                return True

        class PushClaimBroken(InMemoryRepository):
            async def claim_reminder(self, event, stale_before):
                if event.key.channel == Channel.PUSH:
                    raise StorageError("write timeout")
                return await super().claim_reminder(event, stale_before)

        slow = SlowSender()
        dispatcher = NotificationDispatcher({Channel.PUSH: slow, Channel.TELEGRAM: slow}, dispatch_settings)
        repository = PushClaimBroken(credit_cards=[_card()], preferences=[_prefs()])

        summary = await scheduler_factory(repository, dispatcher=dispatcher).run(REMINDER_TIME)

        assert [s.channel for s in summary.sent] == [Channel.TELEGRAM]
        assert [(e.item_type, e.item_id, e.kind) for e in summary.errors] == [
            ("send", "card-1:2024-06-15:push", "storage"),
        ]
        assert slow.delivered == [Channel.TELEGRAM]
        assert [e.status for e in repository.reminder_events] == [ReminderStatus.SENT]
        assert summary.to_trigger_response()["reminders_sent"] == 1
