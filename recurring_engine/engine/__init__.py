"""Generation and reminder engines."""

from recurring_engine.engine.generation import GenerationEngine
from recurring_engine.engine.reminders import ReminderScheduler

__all__ = ["GenerationEngine", "ReminderScheduler"]
