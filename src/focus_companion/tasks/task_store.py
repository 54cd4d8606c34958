# src/focus_companion/tasks/task_store.py

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import date, datetime, timedelta
from typing import Any

from ..core.clock import SystemClock, from_epoch, to_epoch
from ..core.errors import NotFoundError, ValidationError
from ..core.ports import Clock
from ..storage.db import Database, UnitOfWork
from .task_models import (
    Page,
    Task,
    TaskConflict,
    TaskFilter,
    TaskNotFound,
    TaskPatch,
    TaskPriority,
    TaskStatus,
    TaskUpdated,
    TaskUpdateResult,
    _Unset,
)

logger = logging.getLogger(__name__)

TITLE_MAX = 200
DESCRIPTION_MAX = 2000
PAGE_SIZE_MAX = 100

# Matches the declaration order of TaskStatus, not the alphabet.
_STATUS_ORDER_SQL = "CASE status WHEN 'todo' THEN 0 WHEN 'in_progress' THEN 1 ELSE 2 END"


def _check_title(title: str) -> str:
    clean = (title or "").strip()
    if not clean or len(clean) > TITLE_MAX:
        raise ValidationError(f"title must be 1..{TITLE_MAX} characters")
    return clean


def _check_description(description: str | None) -> str | None:
    if description is not None and len(description) > DESCRIPTION_MAX:
        raise ValidationError(f"description must be at most {DESCRIPTION_MAX} characters")
    return description


def _check_count(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


def check_paging(page: int, page_size: int) -> None:
    if page < 1:
        raise ValidationError("page must be >= 1")
    if not 1 <= page_size <= PAGE_SIZE_MAX:
        raise ValidationError(f"page_size must be 1..{PAGE_SIZE_MAX}")


class TaskStore:
    """
    Versioned task records with optimistic concurrency.

    Every accepted mutation bumps `version` by exactly one. Writers must send
    the version they last observed; a mismatch writes nothing and hands back
    the stored record (no merge, no last-writer-wins).
    """

    def __init__(self, db: Database, clock: Clock | None = None) -> None:
        self._db = db
        self._clock: Clock = clock or SystemClock()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("TaskStore ready total=%s", total)

    # ---- low-level helpers ----

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            title=str(row["title"]),
            description=row["description"],
            priority=TaskPriority.from_db(row["priority"]),
            status=TaskStatus.from_db(row["status"]),
            planned_date=date.fromisoformat(row["planned_date"]) if row["planned_date"] else None,
            estimate_pomodoros=int(row["estimate_pomodoros"]),
            completed_pomodoros=int(row["completed_pomodoros"]),
            version=int(row["version"]),
            completed_at=from_epoch(row["completed_at"]) if row["completed_at"] is not None else None,
            created_at=from_epoch(row["created_at"]),
            updated_at=from_epoch(row["updated_at"]),
        )

    @classmethod
    def find_in(cls, uow: UnitOfWork, owner_id: str, task_id: str) -> Task | None:
        row = uow.fetchone("SELECT * FROM tasks WHERE id = ? AND owner_id = ?", (task_id, owner_id))
        return cls._row_to_task(row) if row else None

    # ---- public API ----

    def count_tasks(self, owner_id: str | None = None) -> int:
        with self._db.reader() as conn:
            if owner_id is None:
                (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            else:
                (n,) = conn.execute("SELECT COUNT(*) FROM tasks WHERE owner_id = ?", (owner_id,)).fetchone()
            return int(n)

    def create_task(
        self,
        owner_id: str,
        *,
        title: str,
        description: str | None = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        planned_date: date | None = None,
        estimate_pomodoros: int = 1,
    ) -> Task:
        clean_title = _check_title(title)
        _check_description(description)
        _check_count("estimate_pomodoros", estimate_pomodoros)
        priority = TaskPriority(priority)

        task_id = str(uuid.uuid4())
        now_ts = to_epoch(self._clock.now())

        with self._db.unit_of_work() as uow:
            uow.execute(
                """
                INSERT INTO tasks(
                    id, owner_id, title, description, priority, status,
                    planned_date, estimate_pomodoros, completed_pomodoros,
                    version, completed_at, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, 1, NULL, ?, ?)
                """,
                (
                    task_id,
                    owner_id,
                    clean_title,
                    description,
                    priority.value,
                    TaskStatus.TODO.value,
                    planned_date.isoformat() if planned_date else None,
                    int(estimate_pomodoros),
                    now_ts,
                    now_ts,
                ),
            )
            task = self.find_in(uow, owner_id, task_id)

        assert task is not None
        logger.debug("Task created id=%s owner=%s priority=%s", task_id, owner_id, priority.value)
        return task

    def find_task(self, owner_id: str, task_id: str) -> Task | None:
        with self._db.reader() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND owner_id = ?",
                (task_id, owner_id),
            ).fetchone()
            return self._row_to_task(row) if row else None

    def get_task(self, owner_id: str, task_id: str) -> Task:
        task = self.find_task(owner_id, task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    def list_tasks(
        self,
        owner_id: str,
        *,
        task_filter: TaskFilter = TaskFilter.ALL,
        today: date | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[Task]:
        """
        List tasks for one owner.

        `today` is the owner's local calendar date; required by the
        today/tomorrow filters, which also hide tasks already done.
        """
        check_paging(page, page_size)
        task_filter = TaskFilter(task_filter)

        where = ["owner_id = ?"]
        params: list[Any] = [owner_id]

        if task_filter in (TaskFilter.TODAY, TaskFilter.TOMORROW):
            if today is None:
                raise ValidationError(f"filter {task_filter.value!r} needs the local date")
            target = today if task_filter == TaskFilter.TODAY else today + timedelta(days=1)
            where.append("planned_date = ?")
            params.append(target.isoformat())
            where.append("status != ?")
            params.append(TaskStatus.DONE.value)
        elif task_filter == TaskFilter.COMPLETED:
            where.append("status = ?")
            params.append(TaskStatus.DONE.value)

        where_sql = " AND ".join(where)

        with self._db.reader() as conn:
            (total,) = conn.execute(f"SELECT COUNT(*) FROM tasks WHERE {where_sql}", params).fetchone()
            rows = conn.execute(
                f"""
                SELECT *
                FROM tasks
                WHERE {where_sql}
                ORDER BY {_STATUS_ORDER_SQL} ASC, updated_at DESC, id ASC
                    LIMIT ? OFFSET ?
                """,
                (*params, int(page_size), int((page - 1) * page_size)),
            ).fetchall()

        return Page(
            items=[self._row_to_task(r) for r in rows],
            page=page,
            page_size=page_size,
            total=int(total),
        )

    def update(
        self,
        owner_id: str,
        task_id: str,
        expected_version: int,
        patch: TaskPatch,
    ) -> TaskUpdateResult:
        """
        Compare-and-write on `version`.

        Returns:
        - TaskUpdated(task): version + 1, updated_at advanced
        - TaskConflict(latest): stored version differs; nothing written
        - TaskNotFound(task_id): absent or owned by someone else

        Status written as done stamps completed_at (kept if it was already done);
        any other status written clears it.
        """
        if isinstance(expected_version, bool) or not isinstance(expected_version, int) or expected_version < 1:
            raise ValidationError("expected_version must be an integer >= 1")

        fields, params = self._patch_to_sql(patch)

        with self._db.unit_of_work() as uow:
            current = self.find_in(uow, owner_id, task_id)
            if current is None:
                return TaskNotFound(task_id)

            if current.version != expected_version:
                logger.info(
                    "Task update rejected id=%s expected=v%s stored=v%s",
                    task_id,
                    expected_version,
                    current.version,
                )
                return TaskConflict(latest=current, expected_version=expected_version)

            now_ts = to_epoch(self._clock.now())

            if not isinstance(patch.status, _Unset):
                if patch.status.is_done:
                    fields.append("completed_at = ?")
                    params.append(
                        to_epoch(current.completed_at)
                        if current.status.is_done and current.completed_at is not None
                        else now_ts
                    )
                else:
                    fields.append("completed_at = NULL")

            fields.append("version = version + 1")
            fields.append("updated_at = ?")
            params.append(max(now_ts, to_epoch(current.updated_at)))

            cur = uow.execute(
                f"UPDATE tasks SET {', '.join(fields)} WHERE id = ? AND owner_id = ? AND version = ?",
                (*params, task_id, owner_id, expected_version),
            )
            if cur.rowcount != 1:
                # Unreachable while BEGIN IMMEDIATE holds the write lock; kept as the CAS guard.
                latest = self.find_in(uow, owner_id, task_id)
                if latest is None:
                    return TaskNotFound(task_id)
                return TaskConflict(latest=latest, expected_version=expected_version)

            updated = self.find_in(uow, owner_id, task_id)

        assert updated is not None
        logger.debug("Task updated id=%s v%s -> v%s", task_id, expected_version, updated.version)
        return TaskUpdated(updated)

    @staticmethod
    def _patch_to_sql(patch: TaskPatch) -> tuple[list[str], list[Any]]:
        fields: list[str] = []
        params: list[Any] = []

        if not isinstance(patch.title, _Unset):
            fields.append("title = ?")
            params.append(_check_title(patch.title))

        if not isinstance(patch.description, _Unset):
            fields.append("description = ?")
            params.append(_check_description(patch.description))

        if not isinstance(patch.priority, _Unset):
            fields.append("priority = ?")
            params.append(TaskPriority(patch.priority).value)

        if not isinstance(patch.status, _Unset):
            fields.append("status = ?")
            params.append(TaskStatus(patch.status).value)

        if not isinstance(patch.planned_date, _Unset):
            fields.append("planned_date = ?")
            params.append(patch.planned_date.isoformat() if patch.planned_date else None)

        if not isinstance(patch.estimate_pomodoros, _Unset):
            fields.append("estimate_pomodoros = ?")
            params.append(_check_count("estimate_pomodoros", patch.estimate_pomodoros))

        if not isinstance(patch.completed_pomodoros, _Unset):
            fields.append("completed_pomodoros = ?")
            params.append(_check_count("completed_pomodoros", patch.completed_pomodoros))

        return fields, params

    def delete_task(self, owner_id: str, task_id: str) -> int:
        """
        Delete a task and every session that references it, as one unit.

        Returns the number of sessions removed with it.
        """
        with self._db.unit_of_work() as uow:
            if self.find_in(uow, owner_id, task_id) is None:
                raise NotFoundError("task", task_id)
            cur = uow.execute("DELETE FROM sessions WHERE task_id = ?", (task_id,))
            removed_sessions = max(0, cur.rowcount)
            uow.execute("DELETE FROM tasks WHERE id = ? AND owner_id = ?", (task_id, owner_id))

        logger.info("Task deleted id=%s sessions_removed=%s", task_id, removed_sessions)
        return removed_sessions

    def increment_completed_pomodoros(self, uow: UnitOfWork, owner_id: str, task_id: str, *, now: datetime) -> None:
        """
        Bump completed_pomodoros and version by one inside the caller's unit of work.

        Raises NotFoundError (which rolls the whole unit back) if the task is gone.
        """
        cur = uow.execute(
            """
            UPDATE tasks
            SET completed_pomodoros = completed_pomodoros + 1,
                version = version + 1,
                updated_at = MAX(updated_at, ?)
            WHERE id = ? AND owner_id = ?
            """,
            (to_epoch(now), task_id, owner_id),
        )
        if cur.rowcount != 1:
            raise NotFoundError("task", task_id)

    def count_completed_between(self, owner_id: str, start: datetime, end: datetime) -> int:
        """Tasks marked done with completed_at in [start, end)."""
        with self._db.reader() as conn:
            (n,) = conn.execute(
                """
                SELECT COUNT(*)
                FROM tasks
                WHERE owner_id = ?
                  AND status = ?
                  AND completed_at >= ?
                  AND completed_at < ?
                """,
                (owner_id, TaskStatus.DONE.value, to_epoch(start), to_epoch(end)),
            ).fetchone()
            return int(n)
