# src/focus_companion/sessions/cycle.py

from __future__ import annotations

from typing import assert_never

from ..preferences.settings_store import TimerSettings
from .session_models import SessionType


def next_timer_mode(
    completed_type: SessionType,
    focus_count_today: int,
    settings: TimerSettings,
) -> tuple[SessionType, bool]:
    """
    Pick the mode that follows a completed session, and whether to auto-start it.

    focus_count_today includes the session that just completed. Every
    long_break_interval-th focus session (never less than 2) earns a long break.
    """
    match completed_type:
        case SessionType.FOCUS:
            interval = max(2, settings.long_break_interval or 4)
            nxt = SessionType.LONG_BREAK if focus_count_today % interval == 0 else SessionType.SHORT_BREAK
            return nxt, settings.auto_start_break
        case SessionType.SHORT_BREAK | SessionType.LONG_BREAK:
            return SessionType.FOCUS, settings.auto_start_focus
        case _:
            assert_never(completed_type)
