"""
Audit Models for the Recurring Engine

Every significant action of a generation or reminder run is recorded
as an AuditEvent. Events of one invocation share a correlation_id, so
a run can be reconstructed after the fact.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Invocation
    RUN_STARTED = "run_started"
    RUN_COMPLETED = "run_completed"

    # Generation
    OCCURRENCE_GENERATED = "occurrence_generated"
    OCCURRENCE_COALESCED = "occurrence_coalesced"
    CONFIRMATION_QUEUED = "confirmation_queued"
    RULE_STATE_ADVANCED = "rule_state_advanced"
    RULE_STATE_CONFLICT = "rule_state_conflict"
    BACKFILL_CAP_REACHED = "backfill_cap_reached"
    CLOCK_ANOMALY = "clock_anomaly"
    RULE_FAILED = "rule_failed"

    # Reminders
    REMINDER_SENT = "reminder_sent"
    REMINDER_FAILED = "reminder_failed"
    REMINDER_SKIPPED = "reminder_skipped"
    CARD_FAILED = "card_failed"

    # Delivery
    CHANNEL_SEND_FAILED = "channel_send_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'rule', 'card', 'run')"
    )
    entity_id: Optional[str] = None

    # Correlation - all events of one invocation
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.occurrence_generated(rule_id, day, "automatic", correlation_id)
        event = AuditEventBuilder.reminder_sent(card_id, due_date, "telegram", correlation_id)
    """

    @staticmethod
    def run_started(job: str, correlation_id: UUID, now: datetime) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_STARTED,
            entity_type="run",
            entity_id=job,
            correlation_id=correlation_id,
            description=f"{job} run started",
            details={"now": now.isoformat()},
        )

    @staticmethod
    def run_completed(job: str, correlation_id: UUID, counts: dict[str, int]) -> AuditEvent:
        severity = AuditSeverity.WARNING if counts.get("errors") else AuditSeverity.INFO
        return AuditEvent(
            event_type=AuditEventType.RUN_COMPLETED,
            severity=severity,
            entity_type="run",
            entity_id=job,
            correlation_id=correlation_id,
            description=f"{job} run completed",
            details=counts,
        )

    @staticmethod
    def occurrence_generated(
        rule_id: str,
        occurrence_date: date,
        creation_mode: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_GENERATED,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Occurrence generated for {occurrence_date.isoformat()}",
            details={
                "occurrence_date": occurrence_date.isoformat(),
                "creation_mode": creation_mode,
            },
        )

    @staticmethod
    def occurrence_coalesced(
        rule_id: str,
        dedup_key: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_COALESCED,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description="Occurrence already recorded, write coalesced",
            details={"dedup_key": dedup_key},
        )

    @staticmethod
    def confirmation_queued(
        rule_id: str,
        occurrence_date: date,
        channels: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFIRMATION_QUEUED,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Confirmation request queued for {occurrence_date.isoformat()}",
            details={
                "occurrence_date": occurrence_date.isoformat(),
                "channels": channels,
            },
        )

    @staticmethod
    def rule_state_advanced(
        rule_id: str,
        last_generated_date: date,
        next_execution_date: date,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_STATE_ADVANCED,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Next execution moved to {next_execution_date.isoformat()}",
            details={
                "last_generated_date": last_generated_date.isoformat(),
                "next_execution_date": next_execution_date.isoformat(),
            },
        )

    @staticmethod
    def rule_state_conflict(rule_id: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_STATE_CONFLICT,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description="Rule state already advanced by another run",
        )

    @staticmethod
    def backfill_cap_reached(
        rule_id: str,
        cap: int,
        resume_from: date,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKFILL_CAP_REACHED,
            severity=AuditSeverity.WARNING,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Backfill capped at {cap} occurrences",
            details={
                "cap": cap,
                "resume_from": resume_from.isoformat(),
            },
        )

    @staticmethod
    def clock_anomaly(
        rule_id: str,
        today: date,
        last_generated_date: date,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLOCK_ANOMALY,
            severity=AuditSeverity.WARNING,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description="Current date is before the last generated date",
            details={
                "today": today.isoformat(),
                "last_generated_date": last_generated_date.isoformat(),
            },
        )

    @staticmethod
    def rule_failed(
        rule_id: str,
        kind: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Rule processing failed: {kind}",
            error_message=error_message,
            details={"kind": kind},
        )

    @staticmethod
    def reminder_sent(
        card_id: str,
        due_date: date,
        channel: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_SENT,
            entity_type="card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description=f"Due-date reminder sent via {channel}",
            details={
                "due_date": due_date.isoformat(),
                "channel": channel,
            },
        )

    @staticmethod
    def reminder_failed(
        card_id: str,
        due_date: date,
        channel: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description=f"Due-date reminder failed via {channel}",
            error_message=error_message,
            details={
                "due_date": due_date.isoformat(),
                "channel": channel,
            },
        )

    @staticmethod
    def reminder_skipped(
        card_id: str,
        reason: str,
        correlation_id: UUID,
        channel: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_SKIPPED,
            severity=AuditSeverity.DEBUG,
            entity_type="card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description=f"Reminder skipped: {reason}",
            details={
                "reason": reason,
                "channel": channel,
            },
        )

    @staticmethod
    def card_failed(
        card_id: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARD_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description="Card processing failed",
            error_message=error_message,
        )

    @staticmethod
    def channel_send_failed(
        user_id: str,
        channel: str,
        attempts: int,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHANNEL_SEND_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Send via {channel} failed after {attempts} attempts",
            error_message=error_message,
            details={
                "channel": channel,
                "attempts": attempts,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
