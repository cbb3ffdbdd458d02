"""
Timestamp helpers.

All datetimes are stored as timezone-naive UTC for SQLite compatibility.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC; naive values pass through."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a naive UTC datetime with an explicit Z suffix."""
    if dt is None:
        return None
    return dt.isoformat() + "Z"
