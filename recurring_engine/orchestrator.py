"""
Main Orchestrator for the Recurring Engine

Ties the components together and defines the two trigger entry points:
1. Generation (rules -> transaction intents / confirmation requests)
2. Reminders (credit cards -> due-date notifications)

DESIGN DECISION: There is no internal scheduler and no process-wide
client. An external trigger calls run_generation / run_reminders with
injected collaborators; all state lives in the repository, so either
entry point may be invoked as often as the trigger likes, including
overlapping invocations.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional
from uuid import UUID

from recurring_engine.audit import AuditLogger, create_correlation_id
from recurring_engine.config import Settings, get_settings
from recurring_engine.engine import GenerationEngine, ReminderScheduler
from recurring_engine.models.billing import Channel
from recurring_engine.services.notifications import ChannelSender, NotificationDispatcher
from recurring_engine.services.storage import (
    AuditStorageInterface,
    BillingRepository,
    RuleRepository,
)


@dataclass
class AppComponents:
    generation: GenerationEngine
    reminders: ReminderScheduler
    dispatcher: NotificationDispatcher
    audit_logger: AuditLogger


def create_app_components(
    rule_repository: RuleRepository,
    billing_repository: BillingRepository,
    senders: Mapping[Channel, ChannelSender],
    audit_storage: Optional[AuditStorageInterface] = None,
    settings: Optional[Settings] = None,
) -> AppComponents:
    """
    Factory function to create all engine components.

    Args:
        rule_repository: Rules and generation state
        billing_repository: Cards, preferences and reminder dedup records
        senders: One sender per deliverable channel
        audit_storage: Optional persistent audit log; local-only when None
        settings: Defaults to get_settings()

    Returns:
        AppComponents
    """
    settings = settings or get_settings()
    audit_logger = AuditLogger(audit_storage)
    dispatcher = NotificationDispatcher(senders, settings.dispatch)

    generation = GenerationEngine(
        repository=rule_repository,
        dispatcher=dispatcher,
        preferences=billing_repository,
        audit_logger=audit_logger,
        settings=settings.scheduler,
    )
    reminders = ReminderScheduler(
        repository=billing_repository,
        dispatcher=dispatcher,
        audit_logger=audit_logger,
        scheduler_settings=settings.scheduler,
        reminder_settings=settings.reminders,
    )

    return AppComponents(
        generation=generation,
        reminders=reminders,
        dispatcher=dispatcher,
        audit_logger=audit_logger,
    )


async def run_generation(
    components: AppComponents,
    now: Optional[datetime] = None,
    correlation_id: Optional[UUID] = None,
) -> dict:
    """
    Trigger entry point for the daily generation job.

    Returns the structured summary; per-rule errors never fail the call.
    """
    summary = await components.generation.run(
        now or datetime.now(timezone.utc),
        correlation_id or create_correlation_id(),
    )
    return summary.to_trigger_response()


async def run_reminders(
    components: AppComponents,
    now: Optional[datetime] = None,
    correlation_id: Optional[UUID] = None,
) -> dict:
    """
    Trigger entry point for the hourly reminder job.
    """
    summary = await components.reminders.run(
        now or datetime.now(timezone.utc),
        correlation_id or create_correlation_id(),
    )
    return summary.to_trigger_response()
