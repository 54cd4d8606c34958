# src/focus_companion/core/errors.py

"""
Error taxonomy shared by the stores and engines.

- NotFoundError: entity absent or owned by someone else
- ConflictError: version mismatch, or a session that is already terminal
- ValidationError: bad input (duration, date ordering, ranges, timezone)
- TransientFailure: the unit of work could not begin/commit; safe to retry

None of these are retried inside the core.
"""

from __future__ import annotations

from typing import Any

STALE_DATA = "STALE_DATA"
SESSION_FINALIZED = "SESSION_FINALIZED"


class FocusError(Exception):
    """Base class for all domain errors."""


class NotFoundError(FocusError):
    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(FocusError):
    """
    `code` is the machine-readable marker.
    `latest` carries the authoritative record when one is available,
    so callers can rebase without another read.
    """

    def __init__(self, message: str, *, code: str, latest: Any | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.latest = latest


class ValidationError(FocusError, ValueError):
    pass


class TransientFailure(FocusError):
    pass
