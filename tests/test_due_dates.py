"""Tests for the due-date resolver."""

from datetime import date

import pytest

from recurring_engine.models import CreditCardBilling
from recurring_engine.scheduling import DueDateResolver


def _card(**overrides) -> CreditCardBilling:
    fields = dict(id="card-1", user_id="user-1", name="Visa", due_day=15)
    fields.update(overrides)
    return CreditCardBilling(**fields)


@pytest.fixture
def resolver() -> DueDateResolver:
    return DueDateResolver(lead_days=1)


class TestCurrentCycle:

    def test_due_later_this_month(self, resolver):
        """Test that an upcoming due day stays in the reference month."""
        cycle = resolver.current_cycle(_card(), date(2024, 6, 10))
        assert cycle.due_date == date(2024, 6, 15)

    def test_due_date_itself_is_current(self, resolver):
        """Test that on the due date the cycle has not rolled yet."""
        cycle = resolver.current_cycle(_card(), date(2024, 6, 15))
        assert cycle.due_date == date(2024, 6, 15)

    def test_rolls_to_next_month_once_passed(self, resolver):
        """Test that the cycle rolls over after the due date."""
        cycle = resolver.current_cycle(_card(), date(2024, 6, 16))
        assert cycle.due_date == date(2024, 7, 15)

    def test_rolls_over_year_end(self, resolver):
        """Test December to January rollover."""
        cycle = resolver.current_cycle(_card(), date(2024, 12, 20))
        assert cycle.due_date == date(2025, 1, 15)

    def test_due_day_clamped_to_month(self, resolver):
        """Test that due day 31 resolves to June 30."""
        cycle = resolver.current_cycle(_card(due_day=31), date(2024, 6, 10))
        assert cycle.due_date == date(2024, 6, 30)

    def test_no_closing_day(self, resolver):
        """Test that closing data is absent without a closing day."""
        cycle = resolver.current_cycle(_card(), date(2024, 6, 10))
        assert cycle.closing_date is None
        assert cycle.period_start is None

    def test_closing_and_statement_period(self, resolver):
        """Test the informational closing date and statement period."""
        cycle = resolver.current_cycle(_card(closing_day=5), date(2024, 6, 14))
        assert cycle.closing_date == date(2024, 7, 5)
        assert cycle.period_start == date(2024, 6, 5)
        assert cycle.period_end == date(2024, 7, 5)

    def test_closing_day_clamped(self, resolver):
        """Test that the statement period uses clamped closing days."""
        cycle = resolver.current_cycle(_card(closing_day=31, due_day=10), date(2024, 3, 1))
        assert cycle.closing_date == date(2024, 3, 31)
        assert cycle.period_start == date(2024, 2, 29)

    def test_rollover_into_shorter_month(self, resolver):
        """Test that due day 30 after Jan 30 rolls to the last day of February."""
        cycle = resolver.current_cycle(_card(due_day=30), date(2024, 1, 31))
        assert cycle.due_date == date(2024, 2, 29)

    def test_statement_period_across_year_end(self, resolver):
        """Test that the period starts at the previous year's closing date."""
        cycle = resolver.current_cycle(_card(closing_day=31, due_day=10), date(2024, 1, 15))
        assert cycle.closing_date == date(2024, 1, 31)
        assert cycle.period_start == date(2023, 12, 31)


class TestReminderDay:

    def test_day_before_due(self, resolver):
        """Test that the reminder fires exactly the day before the due date."""
        card = _card()
        assert resolver.is_reminder_day(card, date(2024, 6, 14))
        assert not resolver.is_reminder_day(card, date(2024, 6, 13))
        assert not resolver.is_reminder_day(card, date(2024, 6, 15))

    def test_lead_day_across_month_boundary(self, resolver):
        """Test that a due day of 1 is reminded on the last day of the previous month."""
        card = _card(due_day=1)
        assert resolver.is_reminder_day(card, date(2024, 1, 31))
        assert resolver.is_reminder_day(card, date(2024, 2, 29))

    def test_clamped_due_date_lead_day(self, resolver):
        """Test that due day 30 in February is reminded on Feb 28, 2024."""
        assert resolver.is_reminder_day(_card(due_day=30), date(2024, 2, 28))

    def test_longer_lead(self):
        """Test a configurable lead of several days."""
        resolver = DueDateResolver(lead_days=3)
        assert resolver.is_reminder_day(_card(), date(2024, 6, 12))
        assert not resolver.is_reminder_day(_card(), date(2024, 6, 14))

    def test_reminder_date_helper(self, resolver):
        """Test BillingCycle.reminder_date."""
        cycle = resolver.current_cycle(_card(), date(2024, 6, 1))
        assert cycle.reminder_date(1) == date(2024, 6, 14)
