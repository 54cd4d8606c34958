# tests/test_sync_guard.py

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from focus_companion.cli.bootstrap import bootstrap_client
from focus_companion.connectors.console_connector import handle_line
from focus_companion.storage.db import Database
from focus_companion.sync.runner import StateSyncView, StateTaskSource
from focus_companion.sync.sync_guard import (
    STALE_NOTICE,
    StaleGuardedEditor,
    apply_outcome,
    fingerprint,
    guard_step,
    poll_once,
    run_sync_guard,
)
from focus_companion.tasks.task_models import TaskConflict, TaskPatch, TaskUpdated
from focus_companion.tasks.task_store import TaskStore

from .conftest import OWNER
from .fakes import FakeSyncView, ListTaskSource


def test_fingerprint_is_ordered_id_version_updated(task_store, clock) -> None:
    a = task_store.create_task(OWNER, title="a")
    clock.advance(seconds=1)
    b = task_store.create_task(OWNER, title="b")

    fp = fingerprint([a, b])

    assert fp == f"{a.id}:1:{a.updated_at.isoformat()}|{b.id}:1:{b.updated_at.isoformat()}"
    assert fingerprint([b, a]) != fp
    assert fingerprint([]) == ""


def test_first_poll_sets_baseline_silently(task_store) -> None:
    source = ListTaskSource([task_store.create_task(OWNER, title="a")])
    view = FakeSyncView()

    outcome = poll_once(source, None)
    apply_outcome(view, outcome)

    assert outcome.stale is False
    assert view.notices == []
    assert view.discards == 0


def test_remote_change_is_detected_and_applied(task_store) -> None:
    task = task_store.create_task(OWNER, title="a")
    source = ListTaskSource([task])
    baseline = poll_once(source, None)

    same = poll_once(source, baseline.fingerprint)
    assert same.stale is False

    # Another device edits the task.
    source.tasks = [task_store.update(OWNER, task.id, 1, TaskPatch(title="remote")).unwrap()]
    view = FakeSyncView(optimistic={task.id: "local edit"})

    changed = poll_once(source, same.fingerprint)
    apply_outcome(view, changed)

    assert changed.stale is True
    assert changed.fingerprint != baseline.fingerprint
    assert view.optimistic == {}
    assert [t.title for t in view.tasks] == ["remote"]
    assert view.notices == [STALE_NOTICE]


def test_deleted_task_changes_fingerprint(task_store) -> None:
    a = task_store.create_task(OWNER, title="a")
    b = task_store.create_task(OWNER, title="b")
    baseline = poll_once(ListTaskSource([a, b]), None)

    assert poll_once(ListTaskSource([a]), baseline.fingerprint).stale is True


def test_updated_at_alone_changes_fingerprint(task_store) -> None:
    a = task_store.create_task(OWNER, title="a")
    touched = replace(a, updated_at=a.updated_at + timedelta(seconds=1))

    assert fingerprint([a]) != fingerprint([touched])


@pytest.mark.asyncio
async def test_guard_loop_notifies_once_per_change(task_store) -> None:
    task = task_store.create_task(OWNER, title="a")
    source = ListTaskSource([task])
    view = FakeSyncView()
    stop = asyncio.Event()

    runner = asyncio.create_task(run_sync_guard(source, view, interval_seconds=0.01, stop_event=stop))

    await asyncio.sleep(0.05)
    assert view.notices == []

    source.tasks = [task_store.update(OWNER, task.id, 1, TaskPatch(title="remote")).unwrap()]
    await asyncio.sleep(0.05)

    stop.set()
    last = await asyncio.wait_for(runner, timeout=1.0)

    assert view.notices == [STALE_NOTICE]
    assert last == fingerprint(source.tasks)


@pytest.mark.asyncio
async def test_guard_loop_survives_a_failed_poll(task_store) -> None:
    source = ListTaskSource([task_store.create_task(OWNER, title="a")])
    source.fail_next = True
    view = FakeSyncView()
    stop = asyncio.Event()

    runner = asyncio.create_task(run_sync_guard(source, view, interval_seconds=0.01, stop_event=stop))
    await asyncio.sleep(0.05)
    stop.set()
    last = await asyncio.wait_for(runner, timeout=1.0)

    assert source.calls >= 2
    assert last == fingerprint(source.tasks)
    assert view.notices == []


def test_editor_rebases_on_conflict(task_store) -> None:
    task = task_store.create_task(OWNER, title="a")
    view = FakeSyncView(optimistic={task.id: "pending"})
    editor = StaleGuardedEditor(task_store, OWNER, view)

    remote = task_store.update(OWNER, task.id, 1, TaskPatch(title="from pc-2")).unwrap()

    result = editor.edit(task, TaskPatch(title="from pc-1"), [task])

    assert isinstance(result, TaskConflict)
    assert result.latest == remote
    assert view.tasks == [remote]
    assert view.optimistic == {}
    assert view.notices == [STALE_NOTICE]
    assert task_store.get_task(OWNER, task.id).title == "from pc-2"


def test_editor_applies_fresh_edit(task_store) -> None:
    task = task_store.create_task(OWNER, title="a")
    view = FakeSyncView()

    result = StaleGuardedEditor(task_store, OWNER, view).edit(task, TaskPatch(title="b"), [task])

    assert isinstance(result, TaskUpdated)
    assert [t.version for t in view.tasks] == [2]
    assert view.notices == []


# ---- guard on the real console adapters ----


def _second_device(settings, clock) -> TaskStore:
    """Another client writing to the same database file."""
    return TaskStore(Database(settings.db_path, busy_timeout_seconds=5.0), clock=clock)


def test_local_commands_never_look_remote(state, settings, clock) -> None:
    bootstrap_client(state)
    emitted: list[str] = []
    source, view = StateTaskSource(state), StateSyncView(state, emit=emitted.append)

    for line in ("/add write report", "/tasks completed", "/tasks all", "/start focus 1"):
        handle_line(state, line)
        assert guard_step(source, view, state.sync_baseline).stale is False

    clock.advance(minutes=25)
    for line in ("/complete", "/edit 1 title renamed", "/done 1", "/settings timezone UTC", "/rm 1"):
        handle_line(state, line)
        assert guard_step(source, view, state.sync_baseline).stale is False

    assert emitted == []


def test_write_from_second_device_is_reported_once(state, settings, clock) -> None:
    bootstrap_client(state)
    handle_line(state, "/add local")
    emitted: list[str] = []
    source, view = StateTaskSource(state), StateSyncView(state, emit=emitted.append)
    state.pending_edits["x"] = TaskPatch(title="unsaved")

    _second_device(settings, clock).create_task(OWNER, title="from pc-2")

    assert guard_step(source, view, state.sync_baseline).stale is True
    assert guard_step(source, view, state.sync_baseline).stale is False
    assert emitted == [STALE_NOTICE]
    assert {t.title for t in state.visible_tasks} == {"local", "from pc-2"}
    assert state.pending_edits == {}


@pytest.mark.asyncio
async def test_running_guard_ignores_local_edits_and_flags_remote_ones(state, settings, clock) -> None:
    bootstrap_client(state)
    emitted: list[str] = []
    stop = asyncio.Event()
    runner = asyncio.create_task(
        run_sync_guard(
            StateTaskSource(state),
            StateSyncView(state, emit=emitted.append),
            interval_seconds=0.01,
            baseline=state.sync_baseline,
            stop_event=stop,
        )
    )

    for line in ("/add write report", "/tasks completed", "/tasks all", "/done 1"):
        handle_line(state, line)
        await asyncio.sleep(0.03)
    assert emitted == []

    _second_device(settings, clock).create_task(OWNER, title="from pc-2")
    await asyncio.sleep(0.05)

    stop.set()
    last = await asyncio.wait_for(runner, timeout=1.0)

    assert emitted == [STALE_NOTICE]
    assert last == fingerprint(state.visible_tasks)
