# src/focus_companion/sessions/session_engine.py

from __future__ import annotations

"""
Session state machine.

    start()    -> in_progress
    complete() -> completed   (focus + task: task counters bumped in the same unit)
    cancel()   -> cancelled   (cancelled_by=user)

The countdown itself runs on the client; here we only record transitions and
check that ended_at postdates started_at.
"""

import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Any

from ..core.clock import SystemClock, ensure_utc, from_epoch, to_epoch
from ..core.errors import SESSION_FINALIZED, ConflictError, NotFoundError, ValidationError
from ..core.ports import Clock
from ..preferences.settings_store import PreferencesStore
from ..storage.db import Database, UnitOfWork
from ..tasks.task_models import Page
from ..tasks.task_store import TaskStore, check_paging
from .session_models import CancelledBy, Session, SessionStatus, SessionType

logger = logging.getLogger(__name__)


def row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=str(row["id"]),
        owner_id=str(row["owner_id"]),
        task_id=row["task_id"],
        session_type=SessionType(row["session_type"]),
        duration_sec=int(row["duration_sec"]),
        started_at=from_epoch(row["started_at"]),
        ended_at=from_epoch(row["ended_at"]) if row["ended_at"] is not None else None,
        status=SessionStatus(row["status"]),
        cancelled_by=CancelledBy(row["cancelled_by"]) if row["cancelled_by"] else None,
    )


class SessionEngine:
    def __init__(
        self,
        db: Database,
        task_store: TaskStore,
        preferences: PreferencesStore,
        clock: Clock | None = None,
    ) -> None:
        self._db = db
        self._tasks = task_store
        self._preferences = preferences
        self._clock: Clock = clock or SystemClock()

    # ---- helpers ----

    @staticmethod
    def _find_in(uow: UnitOfWork, owner_id: str, session_id: str) -> Session | None:
        row = uow.fetchone("SELECT * FROM sessions WHERE id = ? AND owner_id = ?", (session_id, owner_id))
        return row_to_session(row) if row else None

    def _require_in_progress(self, uow: UnitOfWork, owner_id: str, session_id: str, target: SessionStatus) -> Session:
        session = self._find_in(uow, owner_id, session_id)
        if session is None:
            raise NotFoundError("session", session_id)
        if not session.status.can_transition_to(target):
            raise ConflictError(
                f"session {session_id} already finalized ({session.status.value})",
                code=SESSION_FINALIZED,
                latest=session,
            )
        return session

    # ---- transitions ----

    def start(
        self,
        owner_id: str,
        session_type: SessionType,
        duration_sec: int | None = None,
        *,
        task_id: str | None = None,
        started_at: datetime | None = None,
    ) -> Session:
        """
        Open a session in in_progress.

        duration_sec defaults to the owner's timer settings for the session type.
        started_at defaults to now.
        """
        session_type = SessionType(session_type)
        if duration_sec is None:
            duration_sec = self._preferences.get(owner_id).duration_sec(session_type)
        if isinstance(duration_sec, bool) or not isinstance(duration_sec, int) or duration_sec <= 0:
            raise ValidationError("duration_sec must be a positive integer")

        try:
            started = ensure_utc(started_at) if started_at is not None else self._clock.now()
        except ValueError as e:
            raise ValidationError(str(e)) from e

        session_id = str(uuid.uuid4())

        with self._db.unit_of_work() as uow:
            if task_id is not None and self._tasks.find_in(uow, owner_id, task_id) is None:
                raise NotFoundError("task", task_id)

            uow.execute(
                """
                INSERT INTO sessions(
                    id, owner_id, task_id, session_type, duration_sec,
                    started_at, ended_at, status, cancelled_by
                )
                VALUES (?, ?, ?, ?, ?, ?, NULL, ?, NULL)
                """,
                (
                    session_id,
                    owner_id,
                    task_id,
                    session_type.value,
                    duration_sec,
                    to_epoch(started),
                    SessionStatus.IN_PROGRESS.value,
                ),
            )
            session = self._find_in(uow, owner_id, session_id)

        assert session is not None
        logger.info(
            "Session started id=%s type=%s duration=%ss task=%s",
            session_id,
            session_type.value,
            duration_sec,
            task_id,
        )
        return session

    def complete(self, owner_id: str, session_id: str, ended_at: datetime | None = None) -> Session:
        """
        in_progress -> completed.

        A focus session linked to a task bumps the task's completed_pomodoros
        and version inside the same unit of work: either both land or neither does.
        """
        try:
            ended = ensure_utc(ended_at) if ended_at is not None else self._clock.now()
        except ValueError as e:
            raise ValidationError(str(e)) from e

        with self._db.unit_of_work() as uow:
            session = self._require_in_progress(uow, owner_id, session_id, SessionStatus.COMPLETED)
            if ended <= session.started_at:
                raise ValidationError("ended_at must be after started_at")

            uow.execute(
                "UPDATE sessions SET status = ?, ended_at = ? WHERE id = ? AND status = ?",
                (
                    SessionStatus.COMPLETED.value,
                    to_epoch(ended),
                    session_id,
                    SessionStatus.IN_PROGRESS.value,
                ),
            )

            if session.session_type == SessionType.FOCUS and session.task_id is not None:
                self._tasks.increment_completed_pomodoros(uow, owner_id, session.task_id, now=self._clock.now())

            completed = self._find_in(uow, owner_id, session_id)

        assert completed is not None
        logger.info("Session completed id=%s type=%s task=%s", session_id, completed.session_type.value, completed.task_id)
        return completed

    def cancel(self, owner_id: str, session_id: str) -> Session:
        """in_progress -> cancelled (by the user). No task side effects."""
        with self._db.unit_of_work() as uow:
            self._require_in_progress(uow, owner_id, session_id, SessionStatus.CANCELLED)
            uow.execute(
                "UPDATE sessions SET status = ?, cancelled_by = ?, ended_at = ? WHERE id = ? AND status = ?",
                (
                    SessionStatus.CANCELLED.value,
                    CancelledBy.USER.value,
                    to_epoch(self._clock.now()),
                    session_id,
                    SessionStatus.IN_PROGRESS.value,
                ),
            )
            cancelled = self._find_in(uow, owner_id, session_id)

        assert cancelled is not None
        logger.info("Session cancelled id=%s by=user", session_id)
        return cancelled

    # ---- reads ----

    def get_session(self, owner_id: str, session_id: str) -> Session:
        with self._db.reader() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE id = ? AND owner_id = ?",
                (session_id, owner_id),
            ).fetchone()
        if row is None:
            raise NotFoundError("session", session_id)
        return row_to_session(row)

    def active_session(self, owner_id: str) -> Session | None:
        """Most recently started in_progress session, if any."""
        with self._db.reader() as conn:
            row = conn.execute(
                """
                SELECT *
                FROM sessions
                WHERE owner_id = ? AND status = ?
                ORDER BY started_at DESC
                    LIMIT 1
                """,
                (owner_id, SessionStatus.IN_PROGRESS.value),
            ).fetchone()
        return row_to_session(row) if row else None

    def list_sessions(
        self,
        owner_id: str,
        start: datetime,
        end: datetime,
        *,
        page: int = 1,
        page_size: int = 50,
    ) -> Page[Session]:
        """Sessions with started_at in [start, end), newest first."""
        check_paging(page, page_size)
        params: tuple[Any, ...] = (owner_id, to_epoch(start), to_epoch(end))

        with self._db.reader() as conn:
            (total,) = conn.execute(
                "SELECT COUNT(*) FROM sessions WHERE owner_id = ? AND started_at >= ? AND started_at < ?",
                params,
            ).fetchone()
            rows = conn.execute(
                """
                SELECT *
                FROM sessions
                WHERE owner_id = ? AND started_at >= ? AND started_at < ?
                ORDER BY started_at DESC
                    LIMIT ? OFFSET ?
                """,
                (*params, int(page_size), int((page - 1) * page_size)),
            ).fetchall()

        return Page(items=[row_to_session(r) for r in rows], page=page, page_size=page_size, total=int(total))

    def completed_focus_between(
        self,
        owner_id: str,
        start: datetime,
        end: datetime,
        *,
        closed_end: bool = False,
    ) -> list[Session]:
        """
        Completed focus sessions with ended_at in [start, end).

        closed_end=True selects (start, end] instead: sessions whose last
        focused instant falls inside [start, end).
        """
        bounds = "ended_at > ? AND ended_at <= ?" if closed_end else "ended_at >= ? AND ended_at < ?"
        with self._db.reader() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM sessions
                WHERE owner_id = ?
                  AND session_type = ?
                  AND status = ?
                  AND {bounds}
                ORDER BY ended_at ASC
                """,
                (
                    owner_id,
                    SessionType.FOCUS.value,
                    SessionStatus.COMPLETED.value,
                    to_epoch(start),
                    to_epoch(end),
                ),
            ).fetchall()
        return [row_to_session(r) for r in rows]
