"""Schedule resolution package: calendar math, frequencies and billing cycles."""

from recurring_engine.scheduling.calendar_math import (
    IntervalUnit,
    add_interval,
    clamp_day_of_month,
    clamped_day,
    day_of_week,
    days_in_month,
    is_weekend,
)
from recurring_engine.scheduling.due_dates import DueDateResolver
from recurring_engine.scheduling.frequency import (
    FrequencyResolver,
    MalformedRuleError,
    ScheduleError,
    ScheduleExhaustedError,
    next_occurrence,
)

__all__ = [
    # Calendar math
    "IntervalUnit",
    "add_interval",
    "clamp_day_of_month",
    "clamped_day",
    "day_of_week",
    "days_in_month",
    "is_weekend",
    # Resolvers
    "DueDateResolver",
    "FrequencyResolver",
    "next_occurrence",
    # Exceptions
    "MalformedRuleError",
    "ScheduleError",
    "ScheduleExhaustedError",
]
