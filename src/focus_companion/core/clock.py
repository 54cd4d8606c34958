# src/focus_companion/core/clock.py

from __future__ import annotations

from datetime import UTC, datetime


class SystemClock:
    """Wall clock. Always returns aware UTC datetimes."""

    def now(self) -> datetime:
        return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are rejected rather than guessed."""
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise ValueError(f"timestamp must carry a timezone offset: {dt.isoformat()}")
    return dt.astimezone(UTC)


def to_epoch(dt: datetime) -> float:
    return ensure_utc(dt).timestamp()


def from_epoch(ts: float) -> datetime:
    return datetime.fromtimestamp(float(ts), UTC)
