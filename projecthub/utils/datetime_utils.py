"""
Centralized datetime and timezone utilities.

All timestamps the library stores or compares are timezone-aware UTC.
Naive datetimes coming from callers or from SQLite (which drops tzinfo)
are interpreted as UTC. The configured local timezone is only used when
rendering timestamps into user-facing messages.
"""

from datetime import datetime
from typing import Optional
import pytz

from config import settings


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.UTC)


def get_local_tz() -> pytz.BaseTzInfo:
    """Get the configured display timezone."""
    return pytz.timezone(settings.timezone)


def to_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to timezone-aware UTC.

    Args:
        dt: Aware datetime, or naive datetime assumed to already be UTC

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is not None:
        return dt.astimezone(pytz.UTC)

    return pytz.UTC.localize(dt)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into an aware UTC datetime.

    Accepts a trailing 'Z'. Returns None for empty input and raises
    ValueError for malformed input.
    """
    if not value:
        return None

    value = value.strip()
    if value.endswith(("z", "Z")):
        value = value[:-1] + "+00:00"

    return to_aware_utc(datetime.fromisoformat(value))


def format_local(dt: Optional[datetime], fmt: str = "%Y-%m-%d %H:%M") -> str:
    """Render a timestamp in the display timezone."""
    if dt is None:
        return "-"
    return to_aware_utc(dt).astimezone(get_local_tz()).strftime(fmt)
