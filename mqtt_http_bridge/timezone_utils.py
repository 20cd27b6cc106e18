"""
UTC helpers so every timestamp the bridge produces is timezone-aware.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Get current UTC time with timezone information."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC.

    Naive datetimes are taken to already be in UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_isoformat(dt: Optional[datetime] = None) -> str:
    """ISO 8601 string with a 'Z' suffix (defaults to now)."""
    dt = utc_now() if dt is None else to_utc(dt)
    return dt.isoformat().replace('+00:00', 'Z')

