"""
Datetime utility functions.
Provides timezone-aware helpers used across services.
"""

from datetime import datetime
from typing import Optional, Union
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Return a timezone-aware UTC datetime.

    Naive values (e.g. read back from SQLite) are assumed to already be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def parse_datetime(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO 8601 string (or pass through a datetime) into aware UTC.

    Raises:
        ValueError: If the string cannot be parsed
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Expected string or datetime, got {type(value)}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"Invalid datetime: {value}")
    return ensure_utc(parsed)


def format_session_date(value: Optional[datetime], tz_name: Optional[str] = None) -> str:
    """
    Format a session start as a display date, e.g. "Sat, Jun 7".

    Args:
        value: Session start time
        tz_name: Optional IANA timezone to render in (defaults to UTC)
    """
    if value is None:
        return "TBD"
    local = _to_zone(value, tz_name)
    return f"{local.strftime('%a, %b')} {local.day}"


def format_session_time(value: Optional[datetime], tz_name: Optional[str] = None) -> str:
    """Format a session start as a display time, e.g. "6:30 PM"."""
    if value is None:
        return "TBD"
    local = _to_zone(value, tz_name)
    hour = local.hour % 12 or 12
    return f"{hour}:{local.strftime('%M %p')}"


def _to_zone(value: datetime, tz_name: Optional[str]) -> datetime:
    aware = ensure_utc(value)
    if not tz_name:
        return aware
    try:
        return aware.astimezone(pytz.timezone(tz_name))
    except pytz.UnknownTimeZoneError:
        return aware
