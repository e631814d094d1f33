"""Datetime utilities shared by the orchestrator and the stores."""

from datetime import datetime, timedelta, timezone
from typing import Optional


def now() -> datetime:
    """Get current datetime in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Attach UTC to naive datetimes.

    SQLite hands back naive values for timezone-aware columns; everything
    the application writes is UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def minutes_before(dt: datetime, minutes: int) -> datetime:
    """Return the instant ``minutes`` before ``dt``."""
    return dt - timedelta(minutes=minutes)


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string in UTC, or None."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()
