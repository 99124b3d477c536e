"""Tests for configuration."""

import pytest
from pydantic import ValidationError

from recurring_engine.config import (
    DispatchSettings,
    ReminderSettings,
    SchedulerSettings,
    get_settings,
    validate_all_settings,
)


class TestSchedulerSettings:

    def test_defaults(self, monkeypatch):
        """Test the production defaults."""
        monkeypatch.delenv("SCHEDULER_TIMEZONE", raising=False)
        monkeypatch.delenv("SCHEDULER_BACKFILL_CAP", raising=False)
        settings = SchedulerSettings()
        assert settings.timezone == "America/Argentina/Buenos_Aires"
        assert settings.backfill_cap == 12
        assert settings.tzinfo.key == "America/Argentina/Buenos_Aires"

    def test_env_prefix(self, monkeypatch):
        """Test that values are read from SCHEDULER_* variables."""
        monkeypatch.setenv("SCHEDULER_BACKFILL_CAP", "30")
        assert SchedulerSettings().backfill_cap == 30

    def test_unknown_timezone_rejected(self):
        """Test that an invalid zone fails at startup."""
        with pytest.raises(ValidationError):
            SchedulerSettings(timezone="Mars/Olympus_Mons")

    def test_backfill_cap_positive(self):
        """Test that a zero cap is rejected."""
        with pytest.raises(ValidationError):
            SchedulerSettings(backfill_cap=0)


class TestDispatchSettings:

    def test_backoff_window(self):
        """Test that max backoff may not be below min backoff."""
        with pytest.raises(ValidationError):
            DispatchSettings(backoff_min_seconds=5, backoff_max_seconds=1)

    def test_attempt_bounds(self):
        """Test that retries are bounded."""
        with pytest.raises(ValidationError):
            DispatchSettings(max_attempts=0)


class TestRootSettings:

    def test_sub_settings(self):
        """Test that the root container exposes every section."""
        get_settings.cache_clear()
        settings = get_settings()
        assert isinstance(settings.scheduler, SchedulerSettings)
        assert isinstance(settings.dispatch, DispatchSettings)
        assert isinstance(settings.reminders, ReminderSettings)

    def test_validate_all_reports_errors(self, monkeypatch):
        """Test that startup validation names the broken section."""
        monkeypatch.setenv("REMINDER_LEAD_DAYS", "0")
        get_settings.cache_clear()
        results = validate_all_settings()
        assert results["scheduler"] is True
        assert results["reminders"] is False
        assert "reminders_error" in results
