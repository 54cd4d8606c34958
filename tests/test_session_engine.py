# tests/test_session_engine.py

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from focus_companion.core.errors import SESSION_FINALIZED, ConflictError, NotFoundError, TransientFailure, ValidationError
from focus_companion.sessions.session_models import CancelledBy, SessionStatus, SessionType

from .conftest import OWNER


def test_start_uses_clock_and_settings_defaults(engine, preferences, clock) -> None:
    session = engine.start(OWNER, SessionType.FOCUS)

    assert session.status == SessionStatus.IN_PROGRESS
    assert session.started_at == clock.now()
    assert session.duration_sec == 25 * 60
    assert session.ended_at is None
    assert session.cancelled_by is None

    preferences.update(OWNER, short_break_min=7)
    brk = engine.start(OWNER, SessionType.SHORT_BREAK)
    assert brk.duration_sec == 7 * 60


def test_start_validation(engine, clock) -> None:
    with pytest.raises(ValidationError):
        engine.start(OWNER, SessionType.FOCUS, 0)
    with pytest.raises(ValidationError):
        engine.start(OWNER, SessionType.FOCUS, 1500, started_at=datetime(2024, 1, 1, 9, 0))
    with pytest.raises(NotFoundError):
        engine.start(OWNER, SessionType.FOCUS, 1500, task_id="no-such-task")
    assert engine.active_session(OWNER) is None


def test_complete_focus_bumps_linked_task_once(engine, task_store, clock) -> None:
    task = task_store.create_task(OWNER, title="deep work", estimate_pomodoros=3)
    session = engine.start(OWNER, SessionType.FOCUS, 1500, task_id=task.id)

    clock.advance(minutes=25)
    done = engine.complete(OWNER, session.id)

    assert done.status == SessionStatus.COMPLETED
    assert done.ended_at == clock.now()
    after = task_store.get_task(OWNER, task.id)
    assert after.completed_pomodoros == task.completed_pomodoros + 1
    assert after.version == task.version + 1


def test_complete_break_leaves_task_alone(engine, task_store, clock) -> None:
    task = task_store.create_task(OWNER, title="t")
    session = engine.start(OWNER, SessionType.SHORT_BREAK, 300, task_id=task.id)
    clock.advance(minutes=5)

    engine.complete(OWNER, session.id)

    assert task_store.get_task(OWNER, task.id) == task


def test_complete_rejects_end_not_after_start(engine, clock) -> None:
    session = engine.start(OWNER, SessionType.FOCUS, 1500)

    with pytest.raises(ValidationError):
        engine.complete(OWNER, session.id, ended_at=session.started_at)
    with pytest.raises(ValidationError):
        engine.complete(OWNER, session.id, ended_at=session.started_at - timedelta(seconds=1))

    stored = engine.get_session(OWNER, session.id)
    assert stored == session
    assert stored.status == SessionStatus.IN_PROGRESS


def test_complete_on_terminal_session_is_conflict(engine, clock) -> None:
    session = engine.start(OWNER, SessionType.FOCUS, 1500)
    clock.advance(minutes=25)
    done = engine.complete(OWNER, session.id)

    clock.advance(minutes=1)
    with pytest.raises(ConflictError) as excinfo:
        engine.complete(OWNER, session.id)
    assert excinfo.value.code == SESSION_FINALIZED
    assert engine.get_session(OWNER, session.id).ended_at == done.ended_at

    with pytest.raises(ConflictError):
        engine.cancel(OWNER, session.id)


def test_complete_after_cancel_is_conflict(engine, clock) -> None:
    session = engine.start(OWNER, SessionType.FOCUS, 1500)
    cancelled = engine.cancel(OWNER, session.id)

    clock.advance(minutes=25)
    with pytest.raises(ConflictError):
        engine.complete(OWNER, session.id)

    stored = engine.get_session(OWNER, session.id)
    assert stored.status == SessionStatus.CANCELLED
    assert stored.ended_at == cancelled.ended_at


def test_cancel_marks_user_and_has_no_task_side_effects(engine, task_store, clock) -> None:
    task = task_store.create_task(OWNER, title="t")
    session = engine.start(OWNER, SessionType.FOCUS, 1500, task_id=task.id)
    clock.advance(minutes=3)

    cancelled = engine.cancel(OWNER, session.id)

    assert cancelled.status == SessionStatus.CANCELLED
    assert cancelled.cancelled_by == CancelledBy.USER
    assert cancelled.ended_at == clock.now()
    assert task_store.get_task(OWNER, task.id) == task


def test_unknown_or_foreign_session_is_not_found(engine) -> None:
    session = engine.start(OWNER, SessionType.FOCUS, 1500)
    with pytest.raises(NotFoundError):
        engine.complete("someone-else", session.id)
    with pytest.raises(NotFoundError):
        engine.cancel(OWNER, "missing")


def test_failed_counter_bump_rolls_back_session_completion(engine, task_store, clock, monkeypatch) -> None:
    task = task_store.create_task(OWNER, title="t")
    session = engine.start(OWNER, SessionType.FOCUS, 1500, task_id=task.id)
    clock.advance(minutes=25)

    def boom(uow, owner_id, task_id, *, now):
        # The session UPDATE has already run inside this unit of work.
        raise TransientFailure("disk I/O error")

    monkeypatch.setattr(task_store, "increment_completed_pomodoros", boom)

    with pytest.raises(TransientFailure):
        engine.complete(OWNER, session.id)

    stored = engine.get_session(OWNER, session.id)
    assert stored.status == SessionStatus.IN_PROGRESS
    assert stored.ended_at is None
    assert task_store.get_task(OWNER, task.id) == task

    monkeypatch.undo()
    engine.complete(OWNER, session.id)
    assert task_store.get_task(OWNER, task.id).completed_pomodoros == 1


def test_explicit_timestamps_with_offsets(engine) -> None:
    started = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
    session = engine.start(OWNER, SessionType.FOCUS, 1500, started_at=started)
    done = engine.complete(OWNER, session.id, ended_at=started + timedelta(minutes=25))

    assert done.started_at == started
    assert done.ended_at == started + timedelta(minutes=25)


def test_active_session_and_listing(engine, clock) -> None:
    first = engine.start(OWNER, SessionType.FOCUS, 1500)
    clock.advance(minutes=25)
    engine.complete(OWNER, first.id)
    second = engine.start(OWNER, SessionType.SHORT_BREAK, 300)

    assert engine.active_session(OWNER) == second

    start = datetime(2024, 1, 1, tzinfo=UTC)
    page = engine.list_sessions(OWNER, start, start + timedelta(days=1))
    assert page.total == 2
    assert [s.id for s in page.items] == [second.id, first.id]
