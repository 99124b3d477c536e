"""
Data Models Package

This package contains all Pydantic models used by the recurring engine.
All data flowing through the engine must conform to these schemas.
"""

from recurring_engine.models.billing import (
    BillingCycle,
    Channel,
    CreditCardBilling,
    NotificationPreference,
    ReminderEvent,
    ReminderEventKey,
    ReminderStatus,
)
from recurring_engine.models.recurrence import (
    CreationMode,
    DailyFrequency,
    FrequencySpec,
    FrequencyType,
    MonthlyFrequency,
    MovementTarget,
    RecurrenceRule,
    RuleTarget,
    TransactionType,
    TransferTarget,
    WeekendHandlingPolicy,
    WeeklyFrequency,
    YearlyFrequency,
)
from recurring_engine.models.results import (
    ConfirmationRequest,
    DispatchOutcome,
    GenerationSummary,
    ItemError,
    ItemWarning,
    NotificationKind,
    NotificationPayload,
    OccurrenceStatus,
    ReminderSent,
    ReminderSkip,
    ReminderSummary,
    TransactionIntent,
    occurrence_dedup_key,
)
from recurring_engine.models.validation import (
    ValidationIssue,
    ValidationResult,
)
from recurring_engine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Billing models
    "BillingCycle",
    "Channel",
    "CreditCardBilling",
    "NotificationPreference",
    "ReminderEvent",
    "ReminderEventKey",
    "ReminderStatus",
    # Recurrence models
    "CreationMode",
    "DailyFrequency",
    "FrequencySpec",
    "FrequencyType",
    "MonthlyFrequency",
    "MovementTarget",
    "RecurrenceRule",
    "RuleTarget",
    "TransactionType",
    "TransferTarget",
    "WeekendHandlingPolicy",
    "WeeklyFrequency",
    "YearlyFrequency",
    # Engine outputs
    "ConfirmationRequest",
    "DispatchOutcome",
    "GenerationSummary",
    "ItemError",
    "ItemWarning",
    "NotificationKind",
    "NotificationPayload",
    "OccurrenceStatus",
    "ReminderSent",
    "ReminderSkip",
    "ReminderSummary",
    "TransactionIntent",
    "occurrence_dedup_key",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
