"""
Reminder Scheduler

Sends credit-card due-date reminders: on the lead day before a card's
due date, at the user's notification hour, once per enabled channel.

Each (card, due date, channel) send goes through a claim:
1. claim_reminder inserts a PENDING dedup record, or returns False when
   another invocation already owns (or finished) that reminder
2. the dispatcher delivers with its bounded retries
3. complete_reminder stores SENT or FAILED

A claim left PENDING by an invocation that died mid-send is taken over
once it is older than claim_ttl_minutes, so a crash leads to a retried
reminder rather than a silently missing one. A FAILED record is final:
the failure is reported once instead of being retried every hour.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

import structlog

from recurring_engine.audit import AuditLogger, create_correlation_id
from recurring_engine.config import ReminderSettings, SchedulerSettings, get_settings
from recurring_engine.engine.clock import localize, to_utc
from recurring_engine.models.billing import (
    BillingCycle,
    Channel,
    CreditCardBilling,
    NotificationPreference,
    ReminderEvent,
    ReminderEventKey,
    ReminderStatus,
)
from recurring_engine.models.results import (
    ItemError,
    NotificationKind,
    NotificationPayload,
    ReminderSent,
    ReminderSkip,
    ReminderSummary,
)
from recurring_engine.scheduling.due_dates import DueDateResolver
from recurring_engine.services.notifications import NotificationDispatcher
from recurring_engine.services.storage import BillingRepository, StorageError


JOB_NAME = "reminders"


class ReminderScheduler:
    """
    Runs one reminder pass over all cards of active users.
    """

    def __init__(
        self,
        repository: BillingRepository,
        dispatcher: NotificationDispatcher,
        audit_logger: Optional[AuditLogger] = None,
        scheduler_settings: Optional[SchedulerSettings] = None,
        reminder_settings: Optional[ReminderSettings] = None,
    ):
        self._repository = repository
        self._dispatcher = dispatcher
        self._audit = audit_logger or AuditLogger()
        self._scheduler_settings = scheduler_settings or get_settings().scheduler
        self._settings = reminder_settings or get_settings().reminders
        self._resolver = DueDateResolver(lead_days=self._settings.lead_days)
        self._logger = structlog.get_logger(__name__)

    async def run(
        self,
        now: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> ReminderSummary:
        """
        Send the reminders due at this invocation's local date and hour.

        Safe to call any number of times per hour.
        """
        correlation_id = correlation_id or create_correlation_id()
        tz = self._scheduler_settings.tzinfo
        local_now = localize(now, tz)
        now_utc = to_utc(now, tz)

        summary = ReminderSummary(
            correlation_id=correlation_id,
            run_at=now_utc,
            today=local_now.date(),
            hour=local_now.hour,
        )
        await self._audit.log_run_started(JOB_NAME, correlation_id, now)

        cards = await self._repository.list_credit_cards()
        summary.cards_checked = len(cards)

        preferences: dict[str, Optional[NotificationPreference]] = {}
        semaphore = asyncio.Semaphore(self._scheduler_settings.max_concurrency)

        async def bounded(card: CreditCardBilling) -> None:
            async with semaphore:
                await self._process_card(card, now_utc, preferences, summary)

        await asyncio.gather(*(bounded(card) for card in cards))

        await self._audit.log_run_completed(JOB_NAME, correlation_id, {
            "cards_checked": summary.cards_checked,
            "reminders_sent": len(summary.sent),
            "skipped": len(summary.skipped),
            "errors": len(summary.errors),
        })
        return summary

    async def _get_preferences(
        self,
        user_id: str,
        cache: dict[str, Optional[NotificationPreference]],
    ) -> Optional[NotificationPreference]:
        if user_id not in cache:
            cache[user_id] = await self._repository.get_notification_preferences(user_id)
        return cache[user_id]

    async def _skip(
        self,
        summary: ReminderSummary,
        card: CreditCardBilling,
        reason: str,
        channel: Optional[Channel] = None,
    ) -> None:
        summary.skipped.append(ReminderSkip(
            card_id=card.id,
            user_id=card.user_id,
            channel=channel,
            reason=reason,
        ))
        await self._audit.log_reminder_skipped(
            card.id,
            reason,
            summary.correlation_id,
            channel.value if channel else None,
        )

    async def _process_card(
        self,
        card: CreditCardBilling,
        now_utc: datetime,
        preferences: dict[str, Optional[NotificationPreference]],
        summary: ReminderSummary,
    ) -> None:
        try:
            cycle = self._resolver.current_cycle(card, summary.today)
            if summary.today != cycle.reminder_date(self._settings.lead_days):
                return

            preference = await self._get_preferences(card.user_id, preferences)
            if preference is None:
                await self._skip(summary, card, "no_preferences")
                return
            if preference.notification_hour != summary.hour:
                await self._skip(summary, card, "outside_notification_hour")
                return

            channels = preference.enabled_channels
            if not channels:
                await self._skip(summary, card, "no_channels")
                return

            results = await asyncio.gather(
                *(self._remind(card, cycle, channel, now_utc, summary) for channel in channels),
                return_exceptions=True,
            )
            for channel, result in zip(channels, results):
                if isinstance(result, StorageError):
                    await self._record_channel_error(summary, card, cycle, channel, "storage", str(result))
                elif isinstance(result, Exception):
                    self._logger.error(
                        "reminder_crashed",
                        card_id=card.id,
                        channel=channel.value,
                        exc_info=result,
                    )
                    await self._record_channel_error(
                        summary, card, cycle, channel, "unexpected", f"{type(result).__name__}: {result}"
                    )
                elif isinstance(result, BaseException):
                    raise result
        except StorageError as e:
            await self._record_card_error(summary, card, "storage", str(e))
        except Exception as e:
            self._logger.exception("card_processing_crashed", card_id=card.id)
            await self._record_card_error(summary, card, "unexpected", f"{type(e).__name__}: {e}")

    async def _record_card_error(
        self,
        summary: ReminderSummary,
        card: CreditCardBilling,
        kind: str,
        message: str,
    ) -> None:
        summary.errors.append(ItemError(
            item_type="card",
            item_id=card.id,
            kind=kind,
            message=message,
        ))
        await self._audit.log_card_failed(card.id, message, summary.correlation_id)

    async def _record_channel_error(
        self,
        summary: ReminderSummary,
        card: CreditCardBilling,
        cycle: BillingCycle,
        channel: Channel,
        kind: str,
        message: str,
    ) -> None:
        """One channel's reminder failed outside the dispatcher; its siblings are unaffected."""
        key = ReminderEventKey(card_id=card.id, due_date=cycle.due_date, channel=channel)
        summary.errors.append(ItemError(
            item_type="send",
            item_id=key.as_string(),
            kind=kind,
            message=message,
        ))
        await self._audit.log_card_failed(card.id, message, summary.correlation_id)

    def _build_payload(
        self,
        card: CreditCardBilling,
        cycle: BillingCycle,
        key: ReminderEventKey,
    ) -> NotificationPayload:
        name = card.name or "Your credit card"
        return NotificationPayload(
            kind=NotificationKind.DUE_DATE_REMINDER,
            title=f"{name} payment due soon",
            body=f"{name} payment is due on {cycle.due_date.isoformat()}.",
            idempotency_key=key.as_string(),
            data={
                "card_id": card.id,
                "due_date": cycle.due_date.isoformat(),
                "closing_date": cycle.closing_date.isoformat() if cycle.closing_date else None,
                "currency": card.currency,
            },
        )

    async def _remind(
        self,
        card: CreditCardBilling,
        cycle: BillingCycle,
        channel: Channel,
        now_utc: datetime,
        summary: ReminderSummary,
    ) -> None:
        cid = summary.correlation_id
        key = ReminderEventKey(card_id=card.id, due_date=cycle.due_date, channel=channel)
        claim = ReminderEvent(key=key, user_id=card.user_id, claimed_at=now_utc)
        stale_before = now_utc - timedelta(minutes=self._settings.claim_ttl_minutes)

        if not await self._repository.claim_reminder(claim, stale_before):
            existing = await self._repository.get_reminder_event(key)
            if existing is not None and not existing.is_final:
                reason = "in_flight"
            elif existing is not None and existing.status == ReminderStatus.FAILED:
                reason = "already_failed"
            else:
                reason = "already_sent"
            await self._skip(summary, card, reason, channel)
            return

        outcome = await self._dispatcher.dispatch(
            card.user_id,
            channel,
            self._build_payload(card, cycle, key),
        )

        await self._repository.complete_reminder(claim.model_copy(update={
            "status": ReminderStatus.SENT if outcome.success else ReminderStatus.FAILED,
            "attempts": outcome.attempts,
            "completed_at": now_utc,
            "error_message": outcome.error_message,
        }))

        if outcome.success:
            summary.sent.append(ReminderSent(
                card_id=card.id,
                user_id=card.user_id,
                channel=channel,
                due_date=cycle.due_date,
                attempts=outcome.attempts,
            ))
            await self._audit.log_reminder_sent(card.id, cycle.due_date, channel.value, cid)
            return

        message = outcome.error_message or "Send failed"
        summary.errors.append(ItemError(
            item_type="send",
            item_id=key.as_string(),
            kind="send_failed",
            message=message,
        ))
        await self._audit.log_channel_send_failed(
            card.user_id, channel.value, outcome.attempts, message, cid
        )
        await self._audit.log_reminder_failed(card.id, cycle.due_date, channel.value, message, cid)

