"""
Audit Logger

DESIGN DECISION: Every significant engine action is logged.
This provides:
1. Traceability of what each invocation generated, sent and skipped
2. Operator visibility into failed sends and malformed rules
3. A way to reconstruct overlapping invocations after the fact

The audit logger:
- Is async, like the repositories it may persist to
- Gracefully handles failures (an audit write never fails a run)
- Supports correlation IDs: one per invocation
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

import structlog

from recurring_engine.models.audit import AuditEvent, AuditEventBuilder
from recurring_engine.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (JSON via structlog)
    2. An audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("recurring_engine.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_run_started(
        self,
        job: str,
        correlation_id: UUID,
        now: datetime,
    ) -> None:
        await self.log(AuditEventBuilder.run_started(job, correlation_id, now))

    async def log_run_completed(
        self,
        job: str,
        correlation_id: UUID,
        counts: dict[str, int],
    ) -> None:
        await self.log(AuditEventBuilder.run_completed(job, correlation_id, counts))

    async def log_occurrence_generated(
        self,
        rule_id: str,
        occurrence_date: date,
        creation_mode: str,
        correlation_id: UUID,
    ) -> None:
        """Log an occurrence written as a transaction."""
        event = AuditEventBuilder.occurrence_generated(
            rule_id=rule_id,
            occurrence_date=occurrence_date,
            creation_mode=creation_mode,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_occurrence_coalesced(
        self,
        rule_id: str,
        dedup_key: str,
        correlation_id: UUID,
    ) -> None:
        """Log a write rejected because the occurrence already exists."""
        event = AuditEventBuilder.occurrence_coalesced(
            rule_id=rule_id,
            dedup_key=dedup_key,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_confirmation_queued(
        self,
        rule_id: str,
        occurrence_date: date,
        channels: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.confirmation_queued(
            rule_id=rule_id,
            occurrence_date=occurrence_date,
            channels=channels,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rule_state_advanced(
        self,
        rule_id: str,
        last_generated_date: date,
        next_execution_date: date,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.rule_state_advanced(
            rule_id=rule_id,
            last_generated_date=last_generated_date,
            next_execution_date=next_execution_date,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rule_state_conflict(self, rule_id: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.rule_state_conflict(rule_id, correlation_id))

    async def log_backfill_cap_reached(
        self,
        rule_id: str,
        cap: int,
        resume_from: date,
        correlation_id: UUID,
    ) -> None:
        """Log a rule whose backfill was cut at the cap."""
        event = AuditEventBuilder.backfill_cap_reached(
            rule_id=rule_id,
            cap=cap,
            resume_from=resume_from,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_clock_anomaly(
        self,
        rule_id: str,
        today: date,
        last_generated_date: date,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.clock_anomaly(
            rule_id=rule_id,
            today=today,
            last_generated_date=last_generated_date,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rule_failed(
        self,
        rule_id: str,
        kind: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.rule_failed(
            rule_id=rule_id,
            kind=kind,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_reminder_sent(
        self,
        card_id: str,
        due_date: date,
        channel: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.reminder_sent(
            card_id=card_id,
            due_date=due_date,
            channel=channel,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_reminder_failed(
        self,
        card_id: str,
        due_date: date,
        channel: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.reminder_failed(
            card_id=card_id,
            due_date=due_date,
            channel=channel,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_reminder_skipped(
        self,
        card_id: str,
        reason: str,
        correlation_id: UUID,
        channel: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.reminder_skipped(
            card_id=card_id,
            reason=reason,
            correlation_id=correlation_id,
            channel=channel,
        )
        await self.log(event)

    async def log_card_failed(
        self,
        card_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.card_failed(card_id, error_message, correlation_id))

    async def log_channel_send_failed(
        self,
        user_id: str,
        channel: str,
        attempts: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a send that exhausted its retries."""
        event = AuditEventBuilder.channel_send_failed(
            user_id=user_id,
            channel=channel,
            attempts=attempts,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of an invocation and pass it through
    everything the invocation does.
    """
    return uuid4()
