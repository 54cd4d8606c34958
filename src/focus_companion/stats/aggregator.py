# src/focus_companion/stats/aggregator.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from ..preferences.settings_store import PreferencesStore
from ..sessions.session_engine import SessionEngine
from ..tasks.task_store import TaskStore
from .time_windows import closing_local_date, day_bounds_utc, week_bounds_utc

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DailyStats:
    date: date
    focus_count: int
    total_focus_minutes: int
    completed_tasks: int


@dataclass(slots=True, frozen=True)
class WeeklyStats:
    start: date
    # local date -> focus minutes; only days with focus time appear
    days: dict[date, int] = field(default_factory=dict)

    @property
    def total_minutes(self) -> int:
        return sum(self.days.values())

    def minutes_on(self, day: date) -> int:
        return self.days.get(day, 0)


class StatsAggregator:
    """Read-only aggregates over completed focus sessions and done tasks."""

    def __init__(self, sessions: SessionEngine, tasks: TaskStore, preferences: PreferencesStore) -> None:
        self._sessions = sessions
        self._tasks = tasks
        self._preferences = preferences

    def _zone_for(self, owner_id: str, timezone: str | None) -> str:
        return timezone if timezone else self._preferences.get(owner_id).timezone

    def daily(self, owner_id: str, day: date, timezone: str | None = None) -> DailyStats:
        """
        One local day: completed focus sessions with ended_at in the day
        (minutes = floor of the summed seconds) and tasks completed in it.
        """
        tz_name = self._zone_for(owner_id, timezone)
        start, end = day_bounds_utc(day, tz_name)

        sessions = self._sessions.completed_focus_between(owner_id, start, end)
        completed_tasks = self._tasks.count_completed_between(owner_id, start, end)

        total_sec = sum(s.duration_sec for s in sessions)
        stats = DailyStats(
            date=day,
            focus_count=len(sessions),
            total_focus_minutes=total_sec // 60,
            completed_tasks=completed_tasks,
        )
        logger.debug("daily owner=%s tz=%s %s", owner_id, tz_name, stats)
        return stats

    def weekly(self, owner_id: str, start_date: date, timezone: str | None = None) -> WeeklyStats:
        """
        Seven local days from start_date, bucketed by the local calendar date
        on which each session's focus time closed. Minutes are floored per session.
        """
        tz_name = self._zone_for(owner_id, timezone)
        start, end = week_bounds_utc(start_date, tz_name)
        last_day = start_date + timedelta(days=6)

        grouped: dict[date, int] = {}
        for s in self._sessions.completed_focus_between(owner_id, start, end, closed_end=True):
            if s.ended_at is None:
                continue
            key = closing_local_date(s.ended_at, tz_name)
            if not start_date <= key <= last_day:
                continue
            grouped[key] = grouped.get(key, 0) + s.duration_sec // 60

        return WeeklyStats(start=start_date, days=dict(sorted(grouped.items())))
