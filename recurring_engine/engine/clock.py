"""Invocation time handling shared by the generation and reminder runs."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def localize(now: datetime, tz: ZoneInfo) -> datetime:
    """
    Express `now` in the scheduling timezone.

    A naive datetime is taken to already be local wall-clock time.
    """
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def to_utc(now: datetime, tz: ZoneInfo) -> datetime:
    return localize(now, tz).astimezone(timezone.utc)
