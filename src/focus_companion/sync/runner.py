# src/focus_companion/sync/runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from ..core.state import AppState
from ..tasks.task_models import Task
from .sync_guard import run_sync_guard

logger = logging.getLogger(__name__)

VISIBLE_PAGE_SIZE = 100


class StateTaskSource:
    """TaskSource reading the same filter/page the console currently shows."""

    def __init__(self, state: AppState) -> None:
        self._state = state

    def fetch_visible_tasks(self) -> Sequence[Task]:
        st = self._state
        page = st.task_store.list_tasks(
            st.owner_id,
            task_filter=st.task_filter,
            today=st.today(),
            page=1,
            page_size=VISIBLE_PAGE_SIZE,
        )
        return page.items


class StateSyncView:
    """SyncView backed by AppState. Notices go straight to the console via emit."""

    def __init__(self, state: AppState, emit: Callable[[str], None] | None = None) -> None:
        self._state = state
        self._emit = emit

    def discard_optimistic_state(self) -> None:
        with self._state.lock:
            self._state.pending_edits.clear()

    def replace_tasks(self, tasks: Sequence[Task]) -> None:
        with self._state.lock:
            self._state.visible_tasks = list(tasks)

    def notify_stale(self, message: str) -> None:
        if self._emit is not None:
            with contextlib.suppress(Exception):
                self._emit(message)


@dataclass
class SyncBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal sync guard stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_sync_in_background(
    state: AppState,
    *,
    emit: Callable[[str], None] | None = None,
) -> SyncBackgroundRunner | None:
    """
    Start the sync guard in a background thread (so the console REPL can run in parallel).

    The guard compares against state.sync_baseline, which every local reload
    re-baselines, so only changes made elsewhere raise the stale notice.

    Why a thread:
    - console REPL is blocking (input()).
    - the guard is async and wants its own event loop.
    """
    if not getattr(state.settings, "sync_enabled", True):
        logger.info("Sync guard disabled, not starting.")
        return None

    interval = float(getattr(state.settings, "sync_interval_seconds", 15.0))
    source = StateTaskSource(state)
    view = StateSyncView(state, emit=emit)

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(
                run_sync_guard(
                    source,
                    view,
                    interval_seconds=interval,
                    baseline=state.sync_baseline,
                    stop_event=stop_event,
                )
            )
        except Exception:
            logger.exception("Sync guard crashed.")
        finally:
            with contextlib.suppress(RuntimeError):
                loop.close()
            logger.info("Sync guard stopped.")

    t = threading.Thread(target=runner, name="sync-guard", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Sync guard thread did not initialize properly.")
        return None

    logger.info("Sync guard started (every %.1fs).", interval)
    return SyncBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
