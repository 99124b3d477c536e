#!/usr/bin/env python3
"""
Dry-run trigger for the recurring engine.

Loads a JSON snapshot (rules, credit_cards, notification_preferences,
holidays, inactive_user_ids) into the in-memory repository, runs one
job and prints its structured summary as JSON. Notifications are only
written to the log.

Usage:
    python -m app.main generation --snapshot data.json [--now 2024-05-31T08:00:00]
    python -m app.main reminders --snapshot data.json --now 2024-06-14T09:00:00
    python -m app.main preview --snapshot data.json [--count 5]
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import structlog

from recurring_engine.models.billing import Channel
from recurring_engine.orchestrator import create_app_components, run_generation, run_reminders
from recurring_engine.scheduling import FrequencyResolver, ScheduleError
from recurring_engine.services import (
    InMemoryAuditStorage,
    InMemoryRepository,
    LoggingChannelSender,
)
from recurring_engine.validation import RecurrenceRuleValidator

logging.basicConfig(
    level=logging.INFO,
    stream=sys.stderr,
    format="%(message)s",
)
logger = structlog.get_logger("app.main")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a recurring-engine job against a JSON snapshot")
    parser.add_argument("job", choices=["generation", "reminders", "preview"])
    parser.add_argument("--snapshot", type=Path, required=True, help="Path to the JSON snapshot")
    parser.add_argument("--now", type=datetime.fromisoformat, default=None,
                        help="Invocation time (ISO 8601); naive values are local time")
    parser.add_argument("--count", type=int, default=5, help="Occurrences per rule for preview")
    return parser.parse_args(argv)


async def preview(repository: InMemoryRepository, count: int) -> dict:
    """Upcoming occurrences of every active rule."""
    resolver = FrequencyResolver(await repository.list_holidays())
    validator = RecurrenceRuleValidator(resolver)

    result = {}
    for row in await repository.list_active_rules():
        validation = validator.validate(row)
        entry = {"valid": validation.is_valid}
        if validation.rule is not None and validation.is_valid:
            try:
                entry["occurrences"] = [d.isoformat() for d in resolver.preview(validation.rule, count=count)]
            except ScheduleError as e:
                entry["valid"] = False
                entry["error"] = str(e)
        else:
            entry["error"] = validation.error_summary()
        entry["issues"] = [issue.model_dump() for issue in validation.issues]
        result[validation.rule_id] = entry
    return result


async def main(argv=None) -> int:
    args = parse_args(argv)
    now = args.now or datetime.now(timezone.utc)
    logger.info("dry_run_started", job=args.job, now=now.isoformat(), snapshot=str(args.snapshot))

    try:
        snapshot = json.loads(args.snapshot.read_text(encoding="utf-8"))
        repository = InMemoryRepository.from_snapshot(snapshot)

        if args.job == "preview":
            result = await preview(repository, args.count)
        else:
            sender = LoggingChannelSender()
            components = create_app_components(
                rule_repository=repository,
                billing_repository=repository,
                senders={channel: sender for channel in Channel},
                audit_storage=InMemoryAuditStorage(),
            )
            if args.job == "generation":
                result = await run_generation(components, now)
            else:
                result = await run_reminders(components, now)

    except Exception as e:
        logger.error("dry_run_failed", job=args.job, error=str(e), exc_info=True)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
