# src/focus_companion/stats/time_windows.py

"""
Local-calendar <-> UTC conversions.

Windows are half-open [start, end) in UTC, anchored at local midnights of the
given IANA timezone. On DST transition days a local day is 23 or 25 hours long;
the window follows the calendar, not a fixed 24h.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta

from ..preferences.settings_store import load_zone

_EPSILON = timedelta(microseconds=1)


def local_midnight_utc(day: date, tz_name: str) -> datetime:
    zone = load_zone(tz_name)
    return datetime.combine(day, time.min, tzinfo=zone).astimezone(UTC)


def day_bounds_utc(day: date, tz_name: str) -> tuple[datetime, datetime]:
    return local_midnight_utc(day, tz_name), local_midnight_utc(day + timedelta(days=1), tz_name)


def week_bounds_utc(start_date: date, tz_name: str) -> tuple[datetime, datetime]:
    return local_midnight_utc(start_date, tz_name), local_midnight_utc(start_date + timedelta(days=7), tz_name)


def local_date(moment: datetime, tz_name: str) -> date:
    """Calendar date of `moment` as seen in the timezone (not the UTC date)."""
    return moment.astimezone(load_zone(tz_name)).date()


def closing_local_date(ended_at: datetime, tz_name: str) -> date:
    """
    Local date on which a session's focus time closed.

    Same as local_date(ended_at) except that a session ending exactly at local
    midnight belongs to the day it ran in.
    """
    return local_date(ended_at - _EPSILON, tz_name)


def today_in(tz_name: str, now: datetime, offset_days: int = 0) -> date:
    return local_date(now, tz_name) + timedelta(days=offset_days)
