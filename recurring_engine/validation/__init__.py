"""Validation package."""

from recurring_engine.validation.validator import RecurrenceRuleValidator

__all__ = ["RecurrenceRuleValidator"]
