"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime
from typing import Optional
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
    Attach UTC to naive datetimes read back from backends that drop tzinfo (SQLite).

    Aware datetimes are converted to UTC; None passes through.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """
    Serialize a stored timestamp for API responses.

    Examples:
        >>> isoformat(datetime(2026, 1, 21, 18, 30))
        "2026-01-21T18:30:00+00:00"
        >>> isoformat(None) is None
        True
    """
    value = ensure_utc(value)
    return value.isoformat() if value else None
