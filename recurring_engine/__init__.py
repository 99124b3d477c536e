"""
Recurring Engine - Source Package

The scheduling core of a personal-finance tracker: turns recurrence
rules into concrete transactions and drives credit-card due-date
reminders.

DESIGN PRINCIPLES:
1. Safe to re-invoke at any time (idempotent by construction)
2. One bad item never aborts a batch
3. State only moves forward
4. Every step is auditable
5. Storage and delivery channels are injected, never global
"""

__version__ = "1.0.0"
__author__ = "Recurring Engine Team"
