# src/focus_companion/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..preferences.settings_store import PreferencesStore
from ..sessions.recovery import RecoveryReconciler
from ..sessions.session_engine import SessionEngine
from ..sessions.session_models import Session, SessionType
from ..stats.aggregator import StatsAggregator
from ..stats.time_windows import today_in
from ..storage.db import Database
from ..sync.sync_guard import FingerprintBaseline
from ..tasks.task_models import Task, TaskFilter
from .ports import Clock


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any
    owner_id: str
    clock: Clock

    db: Database
    task_store: Any  # TaskStore (Any so tests can swap in fakes)
    preferences: PreferencesStore
    sessions: SessionEngine
    recovery: RecoveryReconciler
    stats: StatsAggregator

    # ---- client-side view state ----
    timer_mode: SessionType = SessionType.FOCUS
    task_filter: TaskFilter = TaskFilter.ALL
    active_session: Session | None = None
    visible_tasks: list[Task] = field(default_factory=list)
    # Local edits not yet confirmed by the store (task_id -> pending patch).
    pending_edits: dict[str, Any] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock)
    # Fingerprint of visible_tasks as last loaded; shared with the sync guard.
    sync_baseline: FingerprintBaseline = field(init=False)

    def __post_init__(self) -> None:
        self.sync_baseline = FingerprintBaseline(lock=self.lock)

    def today(self, offset_days: int = 0) -> date:
        """Owner's local calendar date."""
        tz_name = self.preferences.get(self.owner_id).timezone
        return today_in(tz_name, self.clock.now(), offset_days)
