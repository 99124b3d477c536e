"""
Due-Date Resolver

Computes a credit card's current billing cycle: the payment due date
(and, when the card has a closing day, the statement closing date and
statement period) relative to a reference date.
"""

from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from recurring_engine.models.billing import BillingCycle, CreditCardBilling


def _upcoming(day: int, reference_date: date) -> date:
    """The clamped `day` of the reference month, or of next month once it has passed."""
    candidate = reference_date + relativedelta(day=day)
    if candidate < reference_date:
        candidate = reference_date + relativedelta(months=1, day=day)
    return candidate


class DueDateResolver:
    """
    Resolves billing cycles and reminder eligibility.

    The due date of a cycle is the due_day of the reference month,
    clamped to the month length; once it has passed the cycle rolls to
    next month. On the due date itself the cycle is still current.
    """

    def __init__(self, lead_days: int = 1):
        self._lead_days = lead_days

    def current_cycle(self, card: CreditCardBilling, reference_date: date) -> BillingCycle:
        due_date = _upcoming(card.due_day, reference_date)

        closing_date = None
        period_start = None
        if card.closing_day:
            closing_date = _upcoming(card.closing_day, reference_date)
            period_start = closing_date + relativedelta(months=-1, day=card.closing_day)

        return BillingCycle(
            card_id=card.id,
            reference_date=reference_date,
            due_date=due_date,
            closing_date=closing_date,
            period_start=period_start,
            period_end=closing_date,
        )

    def is_reminder_day(self, card: CreditCardBilling, reference_date: date) -> bool:
        """True exactly on the lead day before the current cycle's due date."""
        cycle = self.current_cycle(card, reference_date)
        return reference_date == cycle.due_date - timedelta(days=self._lead_days)
