"""
Time and date utilities.

All timestamps handled by the engine are timezone-aware UTC. Records coming
from the backing store may carry ISO-8601 strings (with or without a ``Z``
suffix), ``datetime`` objects, or plain ``date`` objects; the helpers here
fold those into one representation.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

TimestampLike = Union[str, datetime, date]


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def to_date_key(value: TimestampLike) -> str:
    """Return the ``YYYY-MM-DD`` calendar key for a timestamp-like value.

    Strings are split on ``T`` (or a space) without timezone conversion, so a
    record stored as ``2024-03-01T23:30:00`` always lands on ``2024-03-01``.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = value.strip()
    return text.split("T")[0].split(" ")[0]


def lookback_start(lookback_days: int, now: Optional[datetime] = None) -> datetime:
    """Return the UTC instant ``lookback_days`` before ``now``."""
    return (now or utcnow()) - timedelta(days=lookback_days)


def age_hours(since: datetime, now: Optional[datetime] = None) -> float:
    """Hours elapsed between ``since`` and ``now`` (default: current UTC time)."""
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    delta = (now or utcnow()) - since
    return delta.total_seconds() / 3600.0
