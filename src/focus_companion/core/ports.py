# src/focus_companion/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the clock and the client-side surfaces swappable and makes testing easier.
"""

from datetime import datetime
from typing import Any, Protocol, Sequence


class Clock(Protocol):
    """Source of "now". Must return timezone-aware datetimes."""

    def now(self) -> datetime: ...


class TaskSource(Protocol):
    """
    Read side used by the sync guard: the list of tasks currently visible
    to the client (same filter/page the client renders).
    """

    def fetch_visible_tasks(self) -> Sequence[Any]: ...


class SyncView(Protocol):
    """
    Client-side surface that holds task state.

    - discard_optimistic_state(): drop any local edits not yet confirmed
    - replace_tasks(...): install the authoritative list
    - notify_stale(...): non-blocking notice, never a modal prompt
    """

    def discard_optimistic_state(self) -> None: ...
    def replace_tasks(self, tasks: Sequence[Any]) -> None: ...
    def notify_stale(self, message: str) -> None: ...
