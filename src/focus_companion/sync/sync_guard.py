# src/focus_companion/sync/sync_guard.py

from __future__ import annotations

"""
Client-side stale data guard.

A small polling loop that:
- re-reads the tasks the client currently shows,
- compares a fingerprint (id:version:updated_at of every visible task),
- on change: drops optimistic local state, installs the authoritative list,
  and shows a non-blocking "stale data" notice.

The last-known fingerprint lives in a FingerprintBaseline owned by the client:
every local reload re-baselines it, so only changes the client did not load
itself count as remote. Nothing is kept at module level.
There is no push channel, so the view is at most one interval behind.
"""

import asyncio
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ..core.ports import SyncView, TaskSource
from ..tasks.task_models import Task, TaskConflict, TaskNotFound, TaskPatch, TaskUpdated, TaskUpdateResult
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)

STALE_NOTICE = "Changed on another device. Refreshed with the latest data."


def fingerprint(tasks: Sequence[Any]) -> str:
    """Ordered `id:version:updated_at` of every task, joined by '|'."""
    parts: list[str] = []
    for t in tasks:
        updated = t.updated_at.isoformat() if hasattr(t.updated_at, "isoformat") else str(t.updated_at)
        parts.append(f"{t.id}:{t.version}:{updated}")
    return "|".join(parts)


@dataclass(slots=True, frozen=True)
class SyncOutcome:
    fingerprint: str
    tasks: list[Any]
    stale: bool


def poll_once(source: TaskSource, last_fingerprint: str | None) -> SyncOutcome:
    """
    One poll. The first load (last_fingerprint None) only sets the baseline;
    an empty baseline is still a baseline.
    """
    tasks = list(source.fetch_visible_tasks())
    current = fingerprint(tasks)
    stale = last_fingerprint is not None and last_fingerprint != current
    return SyncOutcome(fingerprint=current, tasks=tasks, stale=stale)


def apply_outcome(view: SyncView, outcome: SyncOutcome) -> None:
    if not outcome.stale:
        return
    view.discard_optimistic_state()
    view.replace_tasks(outcome.tasks)
    view.notify_stale(STALE_NOTICE)


class FingerprintBaseline:
    """
    Fingerprint of the task list the client currently shows.

    Shared between the guard loop and the client's own reloads. Pass the
    client's lock so a reload and a poll never interleave.
    """

    def __init__(self, value: str | None = None, lock: threading.RLock | None = None) -> None:
        self._value = value
        self.lock = lock or threading.RLock()

    def get(self) -> str | None:
        with self.lock:
            return self._value

    def set(self, value: str | None) -> None:
        with self.lock:
            self._value = value

    def rebase(self, tasks: Sequence[Any]) -> str:
        """Record a list the client loaded itself; the next poll will not flag it."""
        fp = fingerprint(tasks)
        self.set(fp)
        return fp


def guard_step(source: TaskSource, view: SyncView, baseline: FingerprintBaseline) -> SyncOutcome:
    """
    Poll once against the shared baseline and refresh the view on a remote change.

    The baseline only advances once the view took the refresh; if that fails
    the next step retries it.
    """
    with baseline.lock:
        outcome = poll_once(source, baseline.get())
        if outcome.stale:
            logger.info("Remote change detected (%d visible tasks)", len(outcome.tasks))
            apply_outcome(view, outcome)
        baseline.set(outcome.fingerprint)
    return outcome


async def run_sync_guard(
    source: TaskSource,
    view: SyncView,
    *,
    interval_seconds: float = 15.0,
    baseline: FingerprintBaseline | None = None,
    stop_event: asyncio.Event | None = None,
) -> str | None:
    """
    Poll `source` every interval_seconds until stop_event is set (or the task is cancelled).

    Without a baseline the guard keeps its own, and the first poll only sets it.
    Returns the last fingerprint seen so a restarted guard can resume without a
    spurious notice.
    """
    sleep_s = max(0.01, float(interval_seconds))
    baseline = baseline if baseline is not None else FingerprintBaseline()

    while stop_event is None or not stop_event.is_set():
        try:
            guard_step(source, view, baseline)
        except Exception:
            logger.exception("sync poll failed")

        if stop_event is None:
            await asyncio.sleep(sleep_s)
        else:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=sleep_s)
            except TimeoutError:
                pass

    return baseline.get()


class StaleGuardedEditor:
    """
    Client-side edit helper: always sends the last observed version.

    On a conflict the view is rebased onto the stored record and told about it;
    the edit is not retried automatically.
    """

    def __init__(self, store: TaskStore, owner_id: str, view: SyncView) -> None:
        self._store = store
        self._owner_id = owner_id
        self._view = view

    def edit(self, observed: Task, patch: TaskPatch, visible: Sequence[Task]) -> TaskUpdateResult:
        result = self._store.update(self._owner_id, observed.id, observed.version, patch)

        match result:
            case TaskUpdated(task=task):
                self._view.replace_tasks([task if t.id == task.id else t for t in visible])
            case TaskConflict(latest=latest):
                self._view.discard_optimistic_state()
                self._view.replace_tasks([latest if t.id == latest.id else t for t in visible])
                self._view.notify_stale(STALE_NOTICE)
            case TaskNotFound(task_id=task_id):
                self._view.replace_tasks([t for t in visible if t.id != task_id])

        return result
