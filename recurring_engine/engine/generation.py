"""
Generation Engine

Turns due recurrence rules into transaction intents and confirmation
requests, then moves each rule's generation state forward.

Per rule, one invocation:
1. Parses the stored row (malformed rules are reported and skipped)
2. Collects every missed occurrence from next_execution_date up to
   today, at most backfill_cap of them
3. Writes each occurrence under its dedup key (rule_id, date); a
   duplicate means an earlier or concurrent run already wrote it
4. Advances last_generated_date/next_execution_date with a
   compare-and-set on the next_execution_date it started from

CRITICAL: State only moves forward, and only after the occurrences it
covers were written. A crash between the two leaves the dedup keys in
place, so the next run coalesces instead of double-generating.

Confirmation requests are saved first and notified second. The saved
request is the record of truth: it stays pending until the user acts
on it in the app, whether or not a notification went out. A run that
dies after the save leaves a pending, un-notified request; later runs
coalesce on its dedup key and do not notify, so a user is never sent
the same request twice.
"""

import asyncio
from datetime import date, datetime
from typing import Optional
from uuid import UUID

import structlog

from recurring_engine.audit import AuditLogger, create_correlation_id
from recurring_engine.config import SchedulerSettings, get_settings
from recurring_engine.engine.clock import localize, to_utc
from recurring_engine.models.billing import Channel
from recurring_engine.models.recurrence import RecurrenceRule
from recurring_engine.models.results import (
    ConfirmationRequest,
    GenerationSummary,
    ItemError,
    ItemWarning,
    NotificationKind,
    NotificationPayload,
    TransactionIntent,
)
from recurring_engine.scheduling.frequency import FrequencyResolver, ScheduleError
from recurring_engine.services.notifications import NotificationDispatcher
from recurring_engine.services.storage import (
    BillingRepository,
    ConflictError,
    DuplicateError,
    RuleRecord,
    RuleRepository,
    StorageError,
)
from recurring_engine.validation import RecurrenceRuleValidator


JOB_NAME = "generation"


class GenerationEngine:
    """
    Runs one generation pass over all active rules.

    Rules are processed concurrently (bounded by max_concurrency) and
    independently: a failure on one rule is recorded in the summary
    and never stops the others.
    """

    def __init__(
        self,
        repository: RuleRepository,
        dispatcher: Optional[NotificationDispatcher] = None,
        preferences: Optional[BillingRepository] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SchedulerSettings] = None,
    ):
        """
        Args:
            repository: Rules, generation state and occurrence writes
            dispatcher: Delivers confirmation requests; without it
                        requests are only queued
            preferences: Source of the users' enabled channels
            audit_logger: Defaults to a local-only AuditLogger
            settings: Defaults to get_settings().scheduler
        """
        self._repository = repository
        self._dispatcher = dispatcher
        self._preferences = preferences
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().scheduler
        self._logger = structlog.get_logger(__name__)

    async def run(
        self,
        now: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> GenerationSummary:
        """
        Generate everything due on or before today.

        Args:
            now: Invocation time; "today" is its date in the configured timezone

        Returns:
            GenerationSummary (per-rule errors are inside it, never raised)
        """
        correlation_id = correlation_id or create_correlation_id()
        tz = self._settings.tzinfo
        today = localize(now, tz).date()

        summary = GenerationSummary(
            correlation_id=correlation_id,
            run_at=to_utc(now, tz),
            today=today,
        )
        await self._audit.log_run_started(JOB_NAME, correlation_id, now)

        holidays = await self._repository.list_holidays()
        resolver = FrequencyResolver(holidays)
        validator = RecurrenceRuleValidator(resolver)

        records = await self._repository.list_active_rules()
        summary.rules_checked = len(records)

        semaphore = asyncio.Semaphore(self._settings.max_concurrency)

        async def bounded(record: RuleRecord) -> None:
            async with semaphore:
                await self._process_record(record, today, resolver, validator, summary)

        await asyncio.gather(*(bounded(record) for record in records))

        summary.generated.sort(key=lambda i: (i.rule_id, i.occurrence_date))
        summary.requests_queued.sort(key=lambda r: (r.rule_id, r.occurrence_date))

        await self._audit.log_run_completed(JOB_NAME, correlation_id, {
            "rules_checked": summary.rules_checked,
            "generated": len(summary.generated),
            "requests_queued": len(summary.requests_queued),
            "coalesced": summary.coalesced,
            "warnings": len(summary.warnings),
            "errors": len(summary.errors),
        })
        return summary

    # -------------------------------------------------------------------------
    # Per-rule processing
    # -------------------------------------------------------------------------

    async def _process_record(
        self,
        record: RuleRecord,
        today: date,
        resolver: FrequencyResolver,
        validator: RecurrenceRuleValidator,
        summary: GenerationSummary,
    ) -> None:
        if isinstance(record, RecurrenceRule):
            rule_id = record.id
        else:
            rule_id = str(record.get("id") or "<unknown>")

        try:
            rule = record if isinstance(record, RecurrenceRule) else validator.parse(record)
            await self._process_rule(rule, today, resolver, summary)
        except ScheduleError as e:
            await self._record_error(summary, rule_id, "malformed_rule", str(e))
        except StorageError as e:
            await self._record_error(summary, rule_id, "storage", str(e))
        except Exception as e:
            self._logger.exception("rule_processing_crashed", rule_id=rule_id)
            await self._record_error(summary, rule_id, "unexpected", f"{type(e).__name__}: {e}")

    async def _record_error(
        self,
        summary: GenerationSummary,
        rule_id: str,
        kind: str,
        message: str,
    ) -> None:
        summary.errors.append(ItemError(
            item_type="rule",
            item_id=rule_id,
            kind=kind,
            message=message,
        ))
        await self._audit.log_rule_failed(rule_id, kind, message, summary.correlation_id)

    def _collect_due(
        self,
        rule: RecurrenceRule,
        start: date,
        today: date,
        resolver: FrequencyResolver,
    ) -> tuple[list[date], date]:
        """
        Occurrences from `start` up to today, at most backfill_cap of them.

        Returns: (occurrence_dates, next_execution_date)
        """
        cap = self._settings.backfill_cap
        occurrences: list[date] = []
        current = start
        while current <= today and len(occurrences) < cap:
            if rule.end_date and current > rule.end_date:
                break
            occurrences.append(current)
            current = resolver.next_occurrence(rule, current)
        return occurrences, current

    async def _process_rule(
        self,
        rule: RecurrenceRule,
        today: date,
        resolver: FrequencyResolver,
        summary: GenerationSummary,
    ) -> None:
        cid = summary.correlation_id

        if not rule.is_eligible:
            return

        if rule.last_generated_date and today < rule.last_generated_date:
            summary.warnings.append(ItemWarning(
                item_type="rule",
                item_id=rule.id,
                kind="clock_anomaly",
                message=(
                    f"Today ({today.isoformat()}) is before last generated date "
                    f"({rule.last_generated_date.isoformat()}); nothing done"
                ),
            ))
            await self._audit.log_clock_anomaly(rule.id, today, rule.last_generated_date, cid)
            return

        expected_next = rule.next_execution_date
        start = expected_next or resolver.first_occurrence(rule)

        if rule.end_date and start > rule.end_date:
            return  # dormant
        if start > today:
            return  # not due yet

        occurrences, next_execution = self._collect_due(rule, start, today, resolver)

        still_due = next_execution <= today and not (rule.end_date and next_execution > rule.end_date)
        if still_due:
            summary.warnings.append(ItemWarning(
                item_type="rule",
                item_id=rule.id,
                kind="backfill_cap",
                message=(
                    f"Generated {len(occurrences)} occurrences (cap); "
                    f"resuming from {next_execution.isoformat()} next run"
                ),
            ))
            await self._audit.log_backfill_cap_reached(
                rule.id, self._settings.backfill_cap, next_execution, cid
            )

        if rule.creation_mode.requires_confirmation:
            channels = await self._route_channels(rule)
            for occurrence_date in occurrences:
                await self._queue_confirmation(rule, occurrence_date, channels, summary)
        else:
            for occurrence_date in occurrences:
                await self._write_intent(rule, occurrence_date, summary)

        last_generated = occurrences[-1]
        try:
            await self._repository.advance_rule_state(
                rule.id,
                expected_next,
                last_generated,
                next_execution,
            )
        except ConflictError:
            # Another invocation advanced the rule; its writes share our dedup keys
            await self._audit.log_rule_state_conflict(rule.id, cid)
            return

        await self._audit.log_rule_state_advanced(rule.id, last_generated, next_execution, cid)

    # -------------------------------------------------------------------------
    # Occurrence writes
    # -------------------------------------------------------------------------

    async def _write_intent(
        self,
        rule: RecurrenceRule,
        occurrence_date: date,
        summary: GenerationSummary,
    ) -> None:
        intent = TransactionIntent.from_rule(rule, occurrence_date)
        try:
            await self._repository.save_transaction_intent(intent)
        except DuplicateError:
            summary.coalesced += 1
            await self._audit.log_occurrence_coalesced(rule.id, intent.dedup_key, summary.correlation_id)
            return

        summary.generated.append(intent)
        await self._audit.log_occurrence_generated(
            rule.id, occurrence_date, rule.creation_mode.value, summary.correlation_id
        )

    async def _queue_confirmation(
        self,
        rule: RecurrenceRule,
        occurrence_date: date,
        channels: list[Channel],
        summary: GenerationSummary,
    ) -> None:
        request = ConfirmationRequest.from_rule(rule, occurrence_date)
        request = request.model_copy(update={"channels": channels})
        try:
            await self._repository.save_confirmation_request(request)
        except DuplicateError:
            # Already queued (and notified) by an earlier run
            summary.coalesced += 1
            await self._audit.log_occurrence_coalesced(rule.id, request.dedup_key, summary.correlation_id)
            return

        summary.requests_queued.append(request)
        await self._audit.log_confirmation_queued(
            rule.id,
            occurrence_date,
            [channel.value for channel in channels],
            summary.correlation_id,
        )

        if channels and self._dispatcher:
            await self._notify(rule, request, summary)

    async def _route_channels(self, rule: RecurrenceRule) -> list[Channel]:
        """
        The preferred channel if the user has it enabled, otherwise
        every enabled channel. Empty when there is nowhere to send.
        """
        if self._preferences is None:
            return []

        preferences = await self._preferences.get_notification_preferences(rule.user_id)
        if preferences is None:
            return []

        if rule.preferred_channel and preferences.is_enabled(rule.preferred_channel):
            return [rule.preferred_channel]
        return preferences.enabled_channels

    async def _notify(
        self,
        rule: RecurrenceRule,
        request: ConfirmationRequest,
        summary: GenerationSummary,
    ) -> None:
        payload = NotificationPayload(
            kind=NotificationKind.CONFIRMATION_REQUEST,
            title=f"Confirm {rule.name}",
            body=(
                f"{rule.name}: {request.amount} {request.currency} on "
                f"{request.occurrence_date.isoformat()}. Confirm or skip."
            ),
            idempotency_key=request.dedup_key,
            data={
                "request_id": str(request.id),
                "rule_id": rule.id,
                "occurrence_date": request.occurrence_date.isoformat(),
                "type": request.type.value,
                "amount": str(request.amount),
                "currency": request.currency,
            },
        )

        outcomes = await self._dispatcher.fan_out(rule.user_id, request.channels, payload)
        for outcome in outcomes:
            if outcome.success:
                continue
            summary.errors.append(ItemError(
                item_type="send",
                item_id=f"{request.dedup_key}:{outcome.channel.value}",
                kind="send_failed",
                message=outcome.error_message or "Send failed",
            ))
            await self._audit.log_channel_send_failed(
                rule.user_id,
                outcome.channel.value,
                outcome.attempts,
                outcome.error_message or "Send failed",
                summary.correlation_id,
            )
