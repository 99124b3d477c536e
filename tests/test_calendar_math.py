"""Tests for calendar math."""

from datetime import date

import pytest

from recurring_engine.scheduling import (
    IntervalUnit,
    add_interval,
    clamp_day_of_month,
    clamped_day,
    day_of_week,
    days_in_month,
    is_weekend,
)


class TestDaysInMonth:

    @pytest.mark.parametrize("year,month,expected", [
        (2024, 1, 31),
        (2024, 4, 30),
        (2023, 2, 28),
        (2024, 2, 29),
        (1900, 2, 28),
        (2000, 2, 29),
    ])
    def test_gregorian_lengths(self, year, month, expected):
        """Test month lengths including century leap-year rules."""
        assert days_in_month(year, month) == expected


class TestClamping:

    def test_day_31_in_30_day_month(self):
        """Test that day 31 resolves to the 30th in April."""
        assert clamp_day_of_month(2024, 4, 31) == date(2024, 4, 30)

    def test_day_31_in_february(self):
        """Test February clamping in leap and non-leap years."""
        assert clamp_day_of_month(2023, 2, 31) == date(2023, 2, 28)
        assert clamp_day_of_month(2024, 2, 31) == date(2024, 2, 29)

    def test_short_day_untouched(self):
        """Test that days that exist are kept."""
        assert clamped_day(2024, 2, 15) == 15


class TestWeekdays:

    def test_sunday_is_zero(self):
        """Test the 0 = Sunday convention."""
        assert day_of_week(date(2024, 6, 2)) == 0  # Sunday
        assert day_of_week(date(2024, 6, 3)) == 1  # Monday
        assert day_of_week(date(2024, 6, 1)) == 6  # Saturday

    def test_is_weekend(self):
        """Test weekend detection."""
        assert is_weekend(date(2024, 6, 1))
        assert is_weekend(date(2024, 6, 2))
        assert not is_weekend(date(2024, 6, 3))
        assert not is_weekend(date(2024, 5, 31))


class TestIntervals:

    def test_add_days_and_weeks(self):
        """Test day and week units."""
        assert add_interval(date(2024, 2, 28), IntervalUnit.DAY, 2) == date(2024, 3, 1)
        assert add_interval(date(2024, 6, 1), IntervalUnit.WEEK, 2) == date(2024, 6, 15)

    def test_add_month_clamps(self):
        """Test that Jan 31 + 1 month lands on the last day of February."""
        assert add_interval(date(2024, 1, 31), IntervalUnit.MONTH, 1) == date(2024, 2, 29)
        assert add_interval(date(2023, 1, 31), "month", 1) == date(2023, 2, 28)

    def test_add_year_from_leap_day(self):
        """Test that Feb 29 + 1 year clamps to Feb 28."""
        assert add_interval(date(2024, 2, 29), IntervalUnit.YEAR, 1) == date(2025, 2, 28)
