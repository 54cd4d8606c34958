# src/focus_companion/preferences/settings_store.py

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, fields, replace
from typing import Any, assert_never
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..core.clock import SystemClock, to_epoch
from ..core.errors import ValidationError
from ..core.ports import Clock
from ..sessions.session_models import SessionType
from ..storage.db import Database

logger = logging.getLogger(__name__)


def load_zone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name or raise ValidationError."""
    try:
        return ZoneInfo((name or "").strip())
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"unknown timezone: {name!r}") from e


@dataclass(slots=True, frozen=True)
class TimerSettings:
    focus_min: int = 25
    short_break_min: int = 5
    long_break_min: int = 15
    long_break_interval: int = 4
    auto_start_break: bool = False
    auto_start_focus: bool = False
    sound_enabled: bool = True
    timezone: str = "Asia/Seoul"

    def duration_sec(self, session_type: SessionType) -> int:
        match session_type:
            case SessionType.FOCUS:
                return self.focus_min * 60
            case SessionType.SHORT_BREAK:
                return self.short_break_min * 60
            case SessionType.LONG_BREAK:
                return self.long_break_min * 60
            case _:
                assert_never(session_type)


# name -> (min, max) for integer fields
_RANGES: dict[str, tuple[int, int]] = {
    "focus_min": (1, 120),
    "short_break_min": (1, 60),
    "long_break_min": (1, 120),
    "long_break_interval": (2, 10),
}
_BOOLS = {"auto_start_break", "auto_start_focus", "sound_enabled"}
_FIELD_NAMES = {f.name for f in fields(TimerSettings)}


def _validate_change(name: str, value: Any) -> Any:
    if name not in _FIELD_NAMES:
        raise ValidationError(f"unknown setting: {name}")
    if name in _RANGES:
        lo, hi = _RANGES[name]
        if isinstance(value, bool) or not isinstance(value, int) or not lo <= value <= hi:
            raise ValidationError(f"{name} must be an integer in {lo}..{hi}")
        return value
    if name in _BOOLS:
        if not isinstance(value, bool):
            raise ValidationError(f"{name} must be a boolean")
        return value
    # timezone
    load_zone(value)
    return str(value).strip()


class PreferencesStore:
    """
    Per-owner timer preferences.

    Owners without a stored row get the defaults plus the configured default timezone.
    """

    def __init__(self, db: Database, *, default_timezone: str = "Asia/Seoul", clock: Clock | None = None) -> None:
        load_zone(default_timezone)
        self._db = db
        self._default_timezone = default_timezone
        self._clock: Clock = clock or SystemClock()

    def defaults(self) -> TimerSettings:
        return TimerSettings(timezone=self._default_timezone)

    def _row_to_settings(self, row: sqlite3.Row) -> TimerSettings:
        return TimerSettings(
            focus_min=int(row["focus_min"]),
            short_break_min=int(row["short_break_min"]),
            long_break_min=int(row["long_break_min"]),
            long_break_interval=int(row["long_break_interval"]),
            auto_start_break=bool(row["auto_start_break"]),
            auto_start_focus=bool(row["auto_start_focus"]),
            sound_enabled=bool(row["sound_enabled"]),
            timezone=row["timezone"] or self._default_timezone,
        )

    def get(self, owner_id: str) -> TimerSettings:
        with self._db.reader() as conn:
            row = conn.execute("SELECT * FROM timer_settings WHERE owner_id = ?", (owner_id,)).fetchone()
        return self._row_to_settings(row) if row else self.defaults()

    def update(self, owner_id: str, **changes: Any) -> TimerSettings:
        """Validate every change first; then upsert the merged row in one unit."""
        clean = {name: _validate_change(name, value) for name, value in changes.items()}

        with self._db.unit_of_work() as uow:
            row = uow.fetchone("SELECT * FROM timer_settings WHERE owner_id = ?", (owner_id,))
            current = self._row_to_settings(row) if row else self.defaults()
            merged = replace(current, **clean)
            uow.execute(
                """
                INSERT INTO timer_settings(
                    owner_id, focus_min, short_break_min, long_break_min, long_break_interval,
                    auto_start_break, auto_start_focus, sound_enabled, timezone, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(owner_id) DO UPDATE SET
                    focus_min = excluded.focus_min,
                    short_break_min = excluded.short_break_min,
                    long_break_min = excluded.long_break_min,
                    long_break_interval = excluded.long_break_interval,
                    auto_start_break = excluded.auto_start_break,
                    auto_start_focus = excluded.auto_start_focus,
                    sound_enabled = excluded.sound_enabled,
                    timezone = excluded.timezone,
                    updated_at = excluded.updated_at
                """,
                (
                    owner_id,
                    merged.focus_min,
                    merged.short_break_min,
                    merged.long_break_min,
                    merged.long_break_interval,
                    int(merged.auto_start_break),
                    int(merged.auto_start_focus),
                    int(merged.sound_enabled),
                    merged.timezone,
                    to_epoch(self._clock.now()),
                ),
            )

        if clean:
            logger.info("Timer settings updated owner=%s fields=%s", owner_id, sorted(clean))
        return merged
