"""
Time helpers. All datetimes handled by the API are timezone-aware UTC.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time in UTC, timezone-aware."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    SQLite returns naive datetimes even for timezone-aware columns; those are
    taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_overdue(due_date: Optional[datetime], done: bool) -> bool:
    """
    A task is overdue if it is not done and its due date has passed.

    Example:
        >>> is_overdue(utc_now() - timedelta(days=1), done=False)
        True
    """
    if not due_date or done:
        return False
    return as_utc(due_date) < utc_now()
