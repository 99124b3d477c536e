"""
Two-Stage Recurrence Rule Validation

Rows read from the store are loosely typed: the frequency is a JSON
object whose meaningful fields depend on its `type`, and older rows use
legacy frequency and weekend-handling names. This module turns such a
row into a RecurrenceRule or explains why it cannot.

STAGE 1 - SCHEMA VALIDATION:
- Legacy value normalisation (biweekly, quarterly, next_business_day, ...)
- Required frequency fields for the rule's type
- Type and range checks (via the pydantic models)

STAGE 2 - SEMANTIC VALIDATION:
- The schedule produces at least one occurrence under its weekend policy
- Day-of-month values that will be clamped in shorter months
- Rules whose schedule already ran past end_date (dormant)

IMPORTANT: Validation never silently fixes a broken rule. Legacy names
are mapped (and reported as info); anything else is an error.
"""

from typing import Any, Optional

from pydantic import ValidationError

from recurring_engine.models.recurrence import RecurrenceRule
from recurring_engine.models.validation import ValidationIssue, ValidationResult
from recurring_engine.scheduling.frequency import (
    FrequencyResolver,
    MalformedRuleError,
    ScheduleExhaustedError,
)


# Legacy frequency type -> (canonical type, interval multiplier)
LEGACY_FREQUENCIES = {
    "biweekly": ("weekly", 2),
    "bimonthly": ("monthly", 2),
    "quarterly": ("monthly", 3),
    "biannual": ("monthly", 6),
    "custom_days": ("daily", None),
}

CUSTOM_DAYS_DEFAULT_INTERVAL = 30

LEGACY_WEEKEND_HANDLING = {
    "as_is": "none",
    "next_business_day": "shift_forward",
    "previous_business_day": "shift_backward",
}

# Fields each canonical frequency type needs
REQUIRED_FREQUENCY_FIELDS = {
    "daily": (),
    "weekly": ("dayOfWeek",),
    "monthly": ("day",),
    "yearly": ("month", "day"),
}


class RecurrenceRuleValidator:
    """
    Validates persisted rule rows through a two-stage pipeline.

    Stage 1: Schema validation (row -> RecurrenceRule)
    Stage 2: Semantic validation (needs a resolver for schedule checks)
    """

    def __init__(self, resolver: Optional[FrequencyResolver] = None):
        self._resolver = resolver or FrequencyResolver()

    # -------------------------------------------------------------------------
    # Stage 1
    # -------------------------------------------------------------------------

    def _normalize_frequency(
        self,
        raw: Any,
    ) -> tuple[Optional[dict], list[ValidationIssue]]:
        issues = []

        if not isinstance(raw, dict):
            issues.append(ValidationIssue(
                field="frequency",
                issue_type="missing",
                message="Frequency must be an object with a 'type'",
                severity="error",
            ))
            return None, issues

        frequency = dict(raw)
        if "day_of_week" in frequency and "dayOfWeek" not in frequency:
            frequency["dayOfWeek"] = frequency.pop("day_of_week")

        # null interval means "every period"
        if frequency.get("interval") is None:
            frequency.pop("interval", None)

        freq_type = frequency.get("type")
        if freq_type in LEGACY_FREQUENCIES:
            canonical, multiplier = LEGACY_FREQUENCIES[freq_type]
            if multiplier is None:
                frequency.setdefault("interval", CUSTOM_DAYS_DEFAULT_INTERVAL)
            else:
                frequency["interval"] = multiplier * int(frequency.get("interval", 1))
            frequency["type"] = canonical
            issues.append(ValidationIssue(
                field="frequency.type",
                issue_type="legacy_value",
                message=f"Legacy frequency '{freq_type}' read as {canonical} every {frequency['interval']}",
                severity="info",
            ))
            freq_type = canonical

        if freq_type not in REQUIRED_FREQUENCY_FIELDS:
            issues.append(ValidationIssue(
                field="frequency.type",
                issue_type="invalid_value",
                message=f"Unknown frequency type: {freq_type!r}",
                severity="error",
            ))
            return None, issues

        for required in REQUIRED_FREQUENCY_FIELDS[freq_type]:
            if frequency.get(required) is None:
                issues.append(ValidationIssue(
                    field=f"frequency.{required}",
                    issue_type="missing",
                    message=f"A {freq_type} frequency needs '{required}'",
                    severity="error",
                ))

        if any(issue.severity == "error" for issue in issues):
            return None, issues
        return frequency, issues

    def _normalize_target(self, row: dict) -> dict:
        """Build the target union from the flat ledger columns."""
        if isinstance(row.get("target"), dict):
            return row["target"]

        kind = row.get("type")
        if kind == "transfer":
            return {
                "kind": "transfer",
                "from_account_id": row.get("from_account_id"),
                "to_account_id": row.get("to_account_id"),
                "to_amount": row.get("to_amount"),
            }
        return {
            "kind": kind,
            "account_id": row.get("account_id"),
            "category_id": row.get("category_id"),
        }

    def _validate_schema(
        self,
        row: dict,
    ) -> tuple[Optional[RecurrenceRule], list[ValidationIssue]]:
        """
        Stage 1: row -> RecurrenceRule.

        Returns: (rule_or_None, list_of_issues)
        """
        frequency, issues = self._normalize_frequency(row.get("frequency"))
        if frequency is None:
            return None, issues

        data = {
            key: value for key, value in row.items()
            if key not in ("type", "account_id", "category_id",
                           "from_account_id", "to_account_id", "to_amount",
                           "preferred_bot")
        }
        data["frequency"] = frequency
        data["target"] = self._normalize_target(row)

        if row.get("preferred_bot") and not row.get("preferred_channel"):
            data["preferred_channel"] = row["preferred_bot"]

        weekend = row.get("weekend_handling")
        if weekend in LEGACY_WEEKEND_HANDLING:
            data["weekend_handling"] = LEGACY_WEEKEND_HANDLING[weekend]
            issues.append(ValidationIssue(
                field="weekend_handling",
                issue_type="legacy_value",
                message=f"Legacy weekend handling '{weekend}' read as {data['weekend_handling']}",
                severity="info",
            ))
        elif weekend is None:
            data.pop("weekend_handling", None)

        try:
            rule = RecurrenceRule.model_validate(data)
        except ValidationError as e:
            for error in e.errors():
                issues.append(ValidationIssue(
                    field=".".join(str(part) for part in error["loc"]) or "rule",
                    issue_type="invalid_value",
                    message=error["msg"],
                    severity="error",
                ))
            return None, issues

        return rule, issues

    # -------------------------------------------------------------------------
    # Stage 2
    # -------------------------------------------------------------------------

    def _validate_semantic(
        self,
        rule: RecurrenceRule,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        try:
            self._resolver.first_occurrence(rule)
        except ScheduleExhaustedError as e:
            issues.append(ValidationIssue(
                field="weekend_handling",
                issue_type="unresolvable",
                message=str(e),
                severity="error",
            ))

        day = getattr(rule.frequency, "day", None)
        if day and day > 28:
            issues.append(ValidationIssue(
                field="frequency.day",
                issue_type="clamped",
                message=f"Day {day} falls on the last day of shorter months",
                severity="info",
            ))

        if rule.is_dormant:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="dormant",
                message="Schedule has passed end_date; nothing more will be generated",
                severity="warning",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def validate(self, row: dict) -> ValidationResult:
        """
        Run the full two-stage pipeline on one persisted row.

        Stage 2 only runs when stage 1 produced a rule.
        """
        rule_id = str(row.get("id") or "<unknown>")

        rule, issues = self._validate_schema(row)
        schema_valid = rule is not None

        semantic_valid = False
        if rule is not None:
            semantic_valid, semantic_issues = self._validate_semantic(rule)
            issues.extend(semantic_issues)

        return ValidationResult(
            rule_id=rule_id,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=issues,
            warnings=[issue.message for issue in issues if issue.severity == "warning"],
            rule=rule,
        )

    def parse(self, row: dict) -> RecurrenceRule:
        """
        Schema-validate a row and return the rule.

        Raises:
            MalformedRuleError: if the row cannot be read as a rule
        """
        rule, issues = self._validate_schema(row)
        if rule is None:
            summary = "; ".join(
                f"{issue.field}: {issue.message}"
                for issue in issues
                if issue.severity == "error"
            )
            raise MalformedRuleError(f"Rule {row.get('id', '<unknown>')}: {summary}")
        return rule
