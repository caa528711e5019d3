"""UTC time helpers.

Every operation takes ``now`` explicitly; these helpers only normalise values
and compute UTC calendar-day boundaries.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    """Current aware UTC time."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime.

    Naive values are taken to already be UTC (SQLite hands timestamps back
    without tzinfo).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def start_of_utc_day(dt: datetime) -> datetime:
    """Midnight UTC at the start of the calendar day containing dt."""
    d = ensure_utc(dt).date()
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def next_utc_midnight(dt: datetime) -> datetime:
    """Midnight UTC at the start of the calendar day after the one containing dt."""
    return start_of_utc_day(dt) + timedelta(days=1)


def utc_date(dt: datetime) -> date:
    """UTC calendar date of dt."""
    return ensure_utc(dt).date()
