# src/focus_companion/sessions/session_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import assert_never

from ..core.errors import ValidationError


class SessionType(StrEnum):
    FOCUS = "focus"
    SHORT_BREAK = "short_break"
    LONG_BREAK = "long_break"

    @classmethod
    def parse(cls, raw: str) -> SessionType:
        """Accept the stored value or the short console spelling (short/long)."""
        key = (raw or "").strip().lower()
        aliases = {"short": cls.SHORT_BREAK, "long": cls.LONG_BREAK, "break": cls.SHORT_BREAK}
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError as e:
            raise ValidationError(f"session type must be focus|short|long, got {raw!r}") from e


class SessionStatus(StrEnum):
    """
    Session lifecycle status.

        in_progress -> completed
        in_progress -> cancelled

    Both targets are terminal.
    """

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        match self:
            case SessionStatus.IN_PROGRESS:
                return False
            case SessionStatus.COMPLETED | SessionStatus.CANCELLED:
                return True
            case _:
                assert_never(self)

    def can_transition_to(self, target: SessionStatus) -> bool:
        match self:
            case SessionStatus.IN_PROGRESS:
                return target.is_terminal
            case SessionStatus.COMPLETED | SessionStatus.CANCELLED:
                return False
            case _:
                assert_never(self)


class CancelledBy(StrEnum):
    USER = "user"
    RECOVERY = "recovery"


@dataclass(slots=True, frozen=True)
class Session:
    id: str
    owner_id: str
    task_id: str | None
    session_type: SessionType
    duration_sec: int
    started_at: datetime
    ended_at: datetime | None
    status: SessionStatus
    cancelled_by: CancelledBy | None = None

    @property
    def duration_minutes(self) -> int:
        return self.duration_sec // 60
