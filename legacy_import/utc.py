"""
UTC datetime helpers.
All timestamps are stored and compared as timezone-aware UTC.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Normalise a datetime to aware UTC.
    Naive values (SQLite drops the offset) are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
