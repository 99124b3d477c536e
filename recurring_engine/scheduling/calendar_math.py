"""
Calendar Math

Pure date arithmetic used by the frequency and due-date resolvers.
No I/O, no state.

Weekday indexes follow the stored rule data: 0 = Sunday ... 6 = Saturday.
Python's date.weekday() (0 = Monday) is converted here and nowhere else.
"""

import calendar
from datetime import date, timedelta
from enum import Enum

from dateutil.relativedelta import relativedelta

SUNDAY = 0
SATURDAY = 6


class IntervalUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


def days_in_month(year: int, month: int) -> int:
    """Number of days in the month, leap-year February included."""
    return calendar.monthrange(year, month)[1]


def clamped_day(year: int, month: int, day: int) -> int:
    """min(day, days_in_month(year, month))."""
    return min(day, days_in_month(year, month))


def clamp_day_of_month(year: int, month: int, day: int) -> date:
    """
    The date for `day` in the given month, clamped to the month's last day.

    A day=31 target in a 30-day month resolves to the 30th.
    """
    return date(year, month, clamped_day(year, month, day))


def day_of_week(d: date) -> int:
    """Weekday of d with 0 = Sunday."""
    return (d.weekday() + 1) % 7


def is_weekend(d: date) -> bool:
    return day_of_week(d) in (SATURDAY, SUNDAY)


def add_interval(d: date, unit: IntervalUnit, n: int) -> date:
    """
    Add n calendar units to d.

    Month and year additions clamp the day of month (Jan 31 + 1 month
    is Feb 28/29), as relativedelta does.
    """
    unit = IntervalUnit(unit)
    if unit is IntervalUnit.DAY:
        return d + timedelta(days=n)
    if unit is IntervalUnit.WEEK:
        return d + timedelta(weeks=n)
    if unit is IntervalUnit.MONTH:
        return d + relativedelta(months=n)
    return d + relativedelta(years=n)
