"""
Time helpers shared by the store, the scorer, and the synchronizer.

All timestamps inside the system are timezone-aware UTC ``datetime`` objects.
SQLite has no native timestamp type, so recommendations are persisted as
fixed-width ISO-8601 text (``YYYY-MM-DDTHH:MM:SS.ffffffZ``). Fixed width
keeps lexical ``ORDER BY`` consistent with chronological order.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

DB_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive datetimes are assumed to already be in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    """Format a datetime as the fixed-width UTC text stored in SQLite."""
    return ensure_utc(value).strftime(DB_TIMESTAMP_FORMAT)


def from_db_timestamp(text: str) -> datetime:
    """Parse text written by :func:`to_db_timestamp` back into a UTC datetime."""
    return datetime.strptime(text, DB_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def hours_since(value: datetime, now: datetime | None = None) -> float:
    """Return elapsed hours from ``value`` to ``now`` (negative if in the future)."""
    reference = ensure_utc(now) if now is not None else utcnow()
    return (reference - ensure_utc(value)) / timedelta(hours=1)
