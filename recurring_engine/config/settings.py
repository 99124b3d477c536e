"""
Configuration Management for the Recurring Engine

Uses pydantic-settings for type-safe configuration from environment variables.

All tunables live here: the timezone "today" is computed in, the
backfill cap, the retry discipline for channel sends and the reminder
claim lease. Components take an explicit settings object and only fall
back to get_settings() when none is given.
"""

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """Generation and reminder scheduling configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    timezone: str = Field(
        default="America/Argentina/Buenos_Aires",
        description="IANA timezone used to compute 'today' and the current hour"
    )
    backfill_cap: int = Field(
        default=12,
        ge=1,
        le=366,
        description="Maximum occurrences generated per rule in one invocation"
    )
    max_concurrency: int = Field(
        default=8,
        ge=1,
        le=64,
        description="How many rules or cards are evaluated at the same time"
    )

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown zone names at startup rather than mid-run."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class DispatchSettings(BaseSettings):
    """Retry and timeout discipline for channel sends."""

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    send_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Per-attempt timeout for a single channel send"
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts per send, including the first"
    )
    backoff_multiplier: float = Field(
        default=1.0,
        ge=0,
        description="Exponential backoff multiplier"
    )
    backoff_min_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Minimum wait between attempts"
    )
    backoff_max_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Maximum wait between attempts"
    )

    @model_validator(mode='after')
    def validate_backoff_window(self) -> 'DispatchSettings':
        if self.backoff_max_seconds < self.backoff_min_seconds:
            raise ValueError("backoff_max_seconds cannot be below backoff_min_seconds")
        return self


class ReminderSettings(BaseSettings):
    """Credit-card due-date reminder configuration."""

    model_config = SettingsConfigDict(
        env_prefix="REMINDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    lead_days: int = Field(
        default=1,
        ge=1,
        le=7,
        description="How many days before the due date the reminder fires"
    )
    claim_ttl_minutes: int = Field(
        default=15,
        ge=1,
        description="Age after which an unfinished reminder claim is retried"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are built on access so a partial environment
    # only fails for the section actually used.

    @property
    def scheduler(self) -> SchedulerSettings:
        return SchedulerSettings()

    @property
    def dispatch(self) -> DispatchSettings:
        return DispatchSettings()

    @property
    def reminders(self) -> ReminderSettings:
        return ReminderSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an
    additional "<name>_error" entry for each failure.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("scheduler", "dispatch", "reminders"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
