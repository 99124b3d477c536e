"""Configuration package."""

from recurring_engine.config.settings import (
    DispatchSettings,
    ReminderSettings,
    SchedulerSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "DispatchSettings",
    "ReminderSettings",
    "SchedulerSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
