"""Validation result models for persisted recurrence-rule rows."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from recurring_engine.models.recurrence import RecurrenceRule


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'legacy_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage rule validation.

    Stage 1: Schema validation (required fields per frequency type, types)
    Stage 2: Semantic validation (schedule resolvable, state consistent)
    """

    rule_id: str
    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    # Parsed rule, present when schema validation passed
    rule: Optional[RecurrenceRule] = None

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    def error_summary(self) -> str:
        return "; ".join(
            f"{issue.field}: {issue.message}"
            for issue in self.issues
            if issue.severity == "error"
        )
