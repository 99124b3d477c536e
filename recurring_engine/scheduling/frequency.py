"""
Frequency Resolver

Turns a recurrence rule into concrete occurrence dates.

Occurrences are computed in two steps:
1. The NOMINAL schedule: the dates the frequency spec describes
   (day-of-month clamped per target month, interval applied to the
   period unit).
2. The weekend-handling policy maps each nominal date onto a business
   day (shift forward/backward) or drops it (skip).

Stepping always happens on nominal dates. When the caller passes an
already-shifted date (a generated occurrence that was moved off a
weekend), the resolver first recovers the nominal date it came from,
so shifting never changes the cadence of the rule.

GUARANTEE: next_occurrence(rule, d) > d for every rule and date.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from recurring_engine.models.recurrence import (
    DailyFrequency,
    FrequencySpec,
    MonthlyFrequency,
    RecurrenceRule,
    WeekendHandlingPolicy,
    WeeklyFrequency,
    YearlyFrequency,
)
from recurring_engine.scheduling.calendar_math import (
    clamped_day,
    day_of_week,
    is_weekend,
)


class ScheduleError(Exception):
    """Base exception for schedule resolution errors."""
    pass


class MalformedRuleError(ScheduleError):
    """Rule is missing a field its frequency type needs, or has invalid values."""
    pass


class ScheduleExhaustedError(MalformedRuleError):
    """The weekend policy rejects every nominal date the rule produces."""
    pass


# Upper bound on nominal candidates examined per call.
MAX_SEARCH_STEPS = 1000

# Longest run of consecutive non-business days a shift may cross.
MAX_SHIFT_DAYS = 14


class FrequencyResolver:
    """
    Pure, deterministic occurrence resolution.

    Holidays, when given, count as non-business days for the
    weekend-handling policy in addition to Saturday and Sunday.
    """

    def __init__(self, holidays: Iterable[date] = ()):
        self._holidays = frozenset(holidays)

    def is_business_day(self, d: date) -> bool:
        return not is_weekend(d) and d not in self._holidays

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def next_occurrence(self, rule: RecurrenceRule, from_date: date) -> date:
        """
        The first occurrence strictly after from_date.

        Raises:
            ScheduleExhaustedError: if the policy rejects every candidate
        """
        spec = rule.frequency
        policy = rule.weekend_handling

        candidate = self._step(spec, self._nominal_anchor(spec, policy, from_date))
        for _ in range(MAX_SEARCH_STEPS):
            resolved = self._apply_policy(policy, candidate)
            if resolved is not None and resolved > from_date:
                return resolved
            candidate = self._step(spec, candidate)

        raise ScheduleExhaustedError(
            f"Rule {rule.id}: no occurrence after {from_date.isoformat()} "
            f"survives weekend handling '{policy.value}'"
        )

    def first_occurrence(self, rule: RecurrenceRule) -> date:
        """
        The first occurrence on or after the rule's start_date.

        Used to seed next_execution_date for rules that never ran.
        """
        spec = rule.frequency
        start = rule.start_date

        candidate = self._in_period(spec, start)
        if candidate < start:
            candidate = self._step(spec, start)

        for _ in range(MAX_SEARCH_STEPS):
            resolved = self._apply_policy(rule.weekend_handling, candidate)
            if resolved is not None and resolved >= start:
                return resolved
            candidate = self._step(spec, candidate)

        raise ScheduleExhaustedError(
            f"Rule {rule.id}: no occurrence from {start.isoformat()} "
            f"survives weekend handling '{rule.weekend_handling.value}'"
        )

    def preview(
        self,
        rule: RecurrenceRule,
        from_date: Optional[date] = None,
        count: int = 5,
    ) -> list[date]:
        """
        Upcoming occurrences, starting at the rule's next execution date
        (or from_date, whichever is later) and stopping at end_date.
        """
        current = rule.next_execution_date or self.first_occurrence(rule)
        if from_date:
            while current < from_date:
                current = self.next_occurrence(rule, current)

        dates: list[date] = []
        while len(dates) < count:
            if rule.end_date and current > rule.end_date:
                break
            dates.append(current)
            current = self.next_occurrence(rule, current)
        return dates

    # -------------------------------------------------------------------------
    # Nominal schedule
    # -------------------------------------------------------------------------

    def _step(self, spec: FrequencySpec, d: date) -> date:
        """Next nominal date strictly after d."""
        if isinstance(spec, DailyFrequency):
            return d + timedelta(days=spec.interval)

        if isinstance(spec, WeeklyFrequency):
            offset = (spec.day_of_week - day_of_week(d)) % 7
            if offset == 0:
                # Already on the target weekday: jump whole interval blocks
                return d + timedelta(weeks=spec.interval)
            return d + timedelta(days=offset)

        if isinstance(spec, MonthlyFrequency):
            # relativedelta clamps day to the target month's length
            return d + relativedelta(months=spec.interval, day=spec.day)

        if isinstance(spec, YearlyFrequency):
            return d + relativedelta(years=spec.interval, month=spec.month, day=spec.day)

        raise MalformedRuleError(f"Unsupported frequency: {spec!r}")

    def _in_period(self, spec: FrequencySpec, d: date) -> date:
        """The nominal date inside the period (day, week, month, year) containing d."""
        if isinstance(spec, DailyFrequency):
            return d
        if isinstance(spec, WeeklyFrequency):
            return d + timedelta(days=(spec.day_of_week - day_of_week(d)) % 7)
        if isinstance(spec, MonthlyFrequency):
            return d + relativedelta(day=spec.day)
        if isinstance(spec, YearlyFrequency):
            return d + relativedelta(month=spec.month, day=spec.day)
        raise MalformedRuleError(f"Unsupported frequency: {spec!r}")

    def _matches(self, spec: FrequencySpec, d: date) -> bool:
        """Is d a nominal date of the pattern (ignoring interval phase)?"""
        if isinstance(spec, DailyFrequency):
            return True
        if isinstance(spec, WeeklyFrequency):
            return day_of_week(d) == spec.day_of_week
        if isinstance(spec, MonthlyFrequency):
            return d.day == clamped_day(d.year, d.month, spec.day)
        if isinstance(spec, YearlyFrequency):
            return d.month == spec.month and d.day == clamped_day(d.year, d.month, spec.day)
        return False

    def _nominal_anchor(
        self,
        spec: FrequencySpec,
        policy: WeekendHandlingPolicy,
        d: date,
    ) -> date:
        """
        Recover the nominal date a shifted occurrence came from.

        Returns d itself when it is nominal or when no shifted
        nominal date maps onto it.
        """
        if policy not in (WeekendHandlingPolicy.SHIFT_FORWARD, WeekendHandlingPolicy.SHIFT_BACKWARD):
            return d
        if self._matches(spec, d):
            return d

        # A forward shift moved the nominal date later, so look back (and vice versa)
        direction = -1 if policy is WeekendHandlingPolicy.SHIFT_FORWARD else 1
        for offset in range(1, MAX_SHIFT_DAYS + 1):
            candidate = d + timedelta(days=direction * offset)
            if self.is_business_day(candidate):
                break
            if self._matches(spec, candidate) and self._apply_policy(policy, candidate) == d:
                return candidate
        return d

    # -------------------------------------------------------------------------
    # Weekend handling
    # -------------------------------------------------------------------------

    def _apply_policy(self, policy: WeekendHandlingPolicy, d: date) -> Optional[date]:
        """Map a nominal date onto its occurrence date; None means skipped."""
        if policy is WeekendHandlingPolicy.NONE or self.is_business_day(d):
            return d
        if policy is WeekendHandlingPolicy.SKIP:
            return None

        step = timedelta(days=1 if policy is WeekendHandlingPolicy.SHIFT_FORWARD else -1)
        shifted = d
        for _ in range(MAX_SHIFT_DAYS):
            shifted += step
            if self.is_business_day(shifted):
                return shifted
        raise ScheduleExhaustedError(
            f"No business day within {MAX_SHIFT_DAYS} days of {d.isoformat()}"
        )


_default_resolver = FrequencyResolver()


def next_occurrence(rule: RecurrenceRule, from_date: date) -> date:
    """next_occurrence with no holiday calendar."""
    return _default_resolver.next_occurrence(rule, from_date)
