# tests/conftest.py

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

from focus_companion.cli.bootstrap import create_initial_state
from focus_companion.core.state import AppState
from focus_companion.preferences.settings_store import PreferencesStore
from focus_companion.sessions.recovery import RecoveryReconciler
from focus_companion.sessions.session_engine import SessionEngine
from focus_companion.stats.aggregator import StatsAggregator
from focus_companion.storage.db import Database
from focus_companion.tasks.task_store import TaskStore

from .fakes import FakeClock

OWNER = "u1"


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="focus-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        db_path=tmp_path / "focus.sqlite3",
        busy_timeout_seconds=5.0,
        owner_id=OWNER,
        default_timezone="Asia/Seoul",
        sync_enabled=False,
        sync_interval_seconds=0.01,
        console_enabled=False,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 0, 0, tzinfo=UTC))


@pytest.fixture()
def db(settings: SimpleNamespace) -> Database:
    return Database(settings.db_path, busy_timeout_seconds=settings.busy_timeout_seconds)


@pytest.fixture()
def task_store(db: Database, clock: FakeClock) -> TaskStore:
    return TaskStore(db, clock=clock)


@pytest.fixture()
def preferences(db: Database, clock: FakeClock) -> PreferencesStore:
    return PreferencesStore(db, default_timezone="Asia/Seoul", clock=clock)


@pytest.fixture()
def engine(db: Database, task_store: TaskStore, preferences: PreferencesStore, clock: FakeClock) -> SessionEngine:
    return SessionEngine(db, task_store, preferences, clock=clock)


@pytest.fixture()
def recovery(db: Database, clock: FakeClock) -> RecoveryReconciler:
    return RecoveryReconciler(db, clock=clock)


@pytest.fixture()
def stats(engine: SessionEngine, task_store: TaskStore, preferences: PreferencesStore) -> StatsAggregator:
    return StatsAggregator(engine, task_store, preferences)


@pytest.fixture()
def state(settings: SimpleNamespace, clock: FakeClock) -> AppState:
    """
    AppState wired by the real composition root with a fake clock.

    NOTE: We keep a real SQLite database here because its transactional
    behaviour is part of what we want to test.
    """
    return create_initial_state(settings=settings, clock=clock)
