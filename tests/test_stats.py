# tests/test_stats.py

from __future__ import annotations

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from focus_companion.core.errors import ValidationError
from focus_companion.sessions.session_models import SessionType
from focus_companion.stats.time_windows import closing_local_date, day_bounds_utc, week_bounds_utc
from focus_companion.tasks.task_models import TaskPatch, TaskStatus

from .conftest import OWNER

SEOUL = ZoneInfo("Asia/Seoul")
NEW_YORK = ZoneInfo("America/New_York")


def _focus(engine, started: datetime, duration_sec: int, *, ended: datetime | None = None):
    session = engine.start(OWNER, SessionType.FOCUS, duration_sec, started_at=started)
    return engine.complete(OWNER, session.id, ended_at=ended or started + timedelta(seconds=duration_sec))


def test_daily_counts_local_morning_session(engine, stats) -> None:
    _focus(engine, datetime(2024, 1, 1, 9, 0, tzinfo=SEOUL), 1500)

    daily = stats.daily(OWNER, date(2024, 1, 1), "Asia/Seoul")

    assert daily.focus_count == 1
    assert daily.total_focus_minutes == 25
    assert daily.completed_tasks == 0


def test_daily_floors_the_summed_seconds(engine, stats) -> None:
    base = datetime(2024, 1, 1, 10, 0, tzinfo=SEOUL)
    _focus(engine, base, 90)
    _focus(engine, base + timedelta(hours=1), 90)

    assert stats.daily(OWNER, date(2024, 1, 1), "Asia/Seoul").total_focus_minutes == 3


def test_daily_ignores_breaks_cancelled_and_other_days(engine, stats) -> None:
    day = datetime(2024, 1, 1, 12, 0, tzinfo=SEOUL)
    brk = engine.start(OWNER, SessionType.SHORT_BREAK, 300, started_at=day)
    engine.complete(OWNER, brk.id, ended_at=day + timedelta(minutes=5))
    cancelled = engine.start(OWNER, SessionType.FOCUS, 1500, started_at=day)
    engine.cancel(OWNER, cancelled.id)
    _focus(engine, datetime(2024, 1, 2, 0, 10, tzinfo=SEOUL), 600)
    engine.start(OWNER, SessionType.FOCUS, 1500, started_at=day)

    daily = stats.daily(OWNER, date(2024, 1, 1), "Asia/Seoul")

    assert daily.focus_count == 0
    assert daily.total_focus_minutes == 0


def test_daily_counts_tasks_completed_in_local_day(task_store, stats, clock) -> None:
    # 2023-12-31T16:30Z is 2024-01-01 01:30 in Seoul.
    clock.set(datetime(2023, 12, 31, 16, 30, tzinfo=ZoneInfo("UTC")))
    task = task_store.create_task(OWNER, title="t")
    task_store.update(OWNER, task.id, 1, TaskPatch(status=TaskStatus.DONE)).unwrap()

    assert stats.daily(OWNER, date(2024, 1, 1), "Asia/Seoul").completed_tasks == 1
    assert stats.daily(OWNER, date(2023, 12, 31), "UTC").completed_tasks == 1
    assert stats.daily(OWNER, date(2023, 12, 31), "Asia/Seoul").completed_tasks == 0


def test_daily_uses_owner_timezone_by_default(engine, stats, preferences) -> None:
    _focus(engine, datetime(2024, 6, 9, 23, 0, tzinfo=NEW_YORK), 1200)

    assert stats.daily(OWNER, date(2024, 6, 9)).focus_count == 0  # Seoul: already 06-10
    preferences.update(OWNER, timezone="America/New_York")
    assert stats.daily(OWNER, date(2024, 6, 9)).focus_count == 1


def test_weekly_buckets_by_local_day_not_utc(engine, stats) -> None:
    # Ends exactly at local midnight; 04:00Z on 06-10.
    _focus(engine, datetime(2024, 6, 9, 23, 40, tzinfo=NEW_YORK), 1200)
    # Ends at 23:58 local on 06-08, which is already 06-09 in UTC.
    _focus(engine, datetime(2024, 6, 8, 23, 33, tzinfo=NEW_YORK), 1500)
    # Early morning local, previous day in neither zone.
    _focus(engine, datetime(2024, 6, 10, 0, 5, tzinfo=NEW_YORK), 600)

    weekly = stats.weekly(OWNER, date(2024, 6, 4), "America/New_York")

    assert weekly.days == {
        date(2024, 6, 8): 25,
        date(2024, 6, 9): 20,
        date(2024, 6, 10): 10,
    }
    assert weekly.total_minutes == 55


def test_weekly_window_is_seven_local_days(engine, stats) -> None:
    start = date(2024, 6, 3)
    _focus(engine, datetime(2024, 6, 2, 22, 0, tzinfo=NEW_YORK), 1500)  # before
    _focus(engine, datetime(2024, 6, 3, 0, 0, tzinfo=NEW_YORK), 1500)  # first day
    _focus(engine, datetime(2024, 6, 9, 23, 0, tzinfo=NEW_YORK), 1500)  # last day
    _focus(engine, datetime(2024, 6, 10, 1, 0, tzinfo=NEW_YORK), 1500)  # after

    weekly = stats.weekly(OWNER, start, "America/New_York")

    assert set(weekly.days) == {date(2024, 6, 3), date(2024, 6, 9)}
    assert weekly.minutes_on(date(2024, 6, 5)) == 0


def test_weekly_floors_minutes_per_session(engine, stats) -> None:
    base = datetime(2024, 6, 5, 10, 0, tzinfo=NEW_YORK)
    _focus(engine, base, 90)
    _focus(engine, base + timedelta(hours=1), 90)

    assert stats.weekly(OWNER, date(2024, 6, 3), "America/New_York").days == {date(2024, 6, 5): 2}


def test_unknown_timezone_is_rejected(stats) -> None:
    with pytest.raises(ValidationError):
        stats.daily(OWNER, date(2024, 1, 1), "Mars/Olympus_Mons")
    with pytest.raises(ValidationError):
        stats.weekly(OWNER, date(2024, 1, 1), "Mars/Olympus_Mons")


def test_day_bounds_follow_local_midnight() -> None:
    start, end = day_bounds_utc(date(2024, 1, 1), "Asia/Seoul")
    assert start.isoformat() == "2023-12-31T15:00:00+00:00"
    assert end - start == timedelta(hours=24)

    # DST starts in New York on 2024-03-10: that local day is 23 hours long.
    dst_start, dst_end = day_bounds_utc(date(2024, 3, 10), "America/New_York")
    assert dst_end - dst_start == timedelta(hours=23)

    w_start, w_end = week_bounds_utc(date(2024, 6, 3), "America/New_York")
    assert w_start.isoformat() == "2024-06-03T04:00:00+00:00"
    assert w_end - w_start == timedelta(days=7)


def test_closing_local_date_edges() -> None:
    midnight = datetime(2024, 6, 10, 0, 0, tzinfo=NEW_YORK)
    assert closing_local_date(midnight, "America/New_York") == date(2024, 6, 9)
    assert closing_local_date(midnight + timedelta(seconds=1), "America/New_York") == date(2024, 6, 10)
