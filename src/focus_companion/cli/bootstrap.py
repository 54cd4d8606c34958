# src/focus_companion/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete stores/engines into AppState,
- repairs sessions abandoned by a previous crash and loads the first view.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.clock import SystemClock
from ..core.ports import Clock
from ..core.state import AppState
from ..preferences.settings_store import PreferencesStore
from ..sessions.recovery import RECOVERED_TIMER_MODE, RecoveryReconciler
from ..sessions.session_engine import SessionEngine
from ..stats.aggregator import StatsAggregator
from ..storage.db import Database
from ..sync.sync_guard import SyncOutcome, poll_once
from ..sync.runner import StateTaskSource
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, clock: Clock | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()
    clock = clock or SystemClock()

    _ensure_local_dirs(settings)

    db = Database(settings.db_path, busy_timeout_seconds=getattr(settings, "busy_timeout_seconds", 30.0))
    task_store = TaskStore(db, clock=clock)
    preferences = PreferencesStore(db, default_timezone=settings.default_timezone, clock=clock)
    sessions = SessionEngine(db, task_store, preferences, clock=clock)

    return AppState(
        settings=settings,
        owner_id=settings.owner_id,
        clock=clock,
        db=db,
        task_store=task_store,
        preferences=preferences,
        sessions=sessions,
        recovery=RecoveryReconciler(db, clock=clock),
        stats=StatsAggregator(sessions, task_store, preferences),
    )


def bootstrap_client(state: AppState) -> tuple[int, SyncOutcome]:
    """
    Run once per client start:
    - cancel sessions left in_progress by a crash/reload,
    - land the timer in the post-recovery mode,
    - load the visible tasks and take the sync baseline (no stale notice).
    """
    reset_count = state.recovery.reset(state.owner_id)
    state.timer_mode = RECOVERED_TIMER_MODE
    state.active_session = None

    baseline = poll_once(StateTaskSource(state), None)
    with state.lock:
        state.visible_tasks = list(baseline.tasks)
        state.pending_edits.clear()
        state.sync_baseline.set(baseline.fingerprint)

    logger.info("Client bootstrap done: reset=%d visible_tasks=%d", reset_count, len(baseline.tasks))
    return reset_count, baseline
