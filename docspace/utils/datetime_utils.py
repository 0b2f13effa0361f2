"""
Common date/time helpers.

Storage: all lifecycle markers (published_at, archived_at, deleted_at) are
stored in UTC. SQLite hands them back naive, so anything comparing a loaded
value against "now" goes through as_utc() first.
"""

from datetime import datetime, timedelta, timezone


def as_utc(dt: datetime) -> datetime:
    """
    Convert dt to tz-aware UTC.
    If dt is naive, we treat it as UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    """
    Get current UTC datetime.
    """
    return datetime.now(timezone.utc)


def days_ago(days: int, *, now: datetime | None = None) -> datetime:
    """
    Cutoff datetime `days` before `now` (defaults to the current time).
    """
    reference = as_utc(now) if now is not None else utc_now()
    return reference - timedelta(days=days)
