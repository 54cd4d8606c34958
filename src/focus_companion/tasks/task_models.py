# src/focus_companion/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Generic, TypeVar, assert_never

from ..core.errors import STALE_DATA, ConflictError, NotFoundError


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskPriority:
        if not raw:
            return cls.MEDIUM
        return cls(raw)


class TaskStatus(StrEnum):
    """Task lifecycle status. Any status may be written by an edit."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        return cls(raw)

    @property
    def is_done(self) -> bool:
        match self:
            case TaskStatus.DONE:
                return True
            case TaskStatus.TODO | TaskStatus.IN_PROGRESS:
                return False
            case _:
                assert_never(self)


class TaskFilter(StrEnum):
    ALL = "all"
    TODAY = "today"
    TOMORROW = "tomorrow"
    COMPLETED = "completed"


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    owner_id: str
    title: str
    description: str | None
    priority: TaskPriority
    status: TaskStatus
    planned_date: date | None
    estimate_pomodoros: int
    completed_pomodoros: int
    version: int
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class _Unset:
    """Marker for "field not part of the patch" (None means "clear it")."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


@dataclass(slots=True, frozen=True)
class TaskPatch:
    """
    Partial update of a task.

    Fields left UNSET are not touched. `description` and `planned_date`
    accept None to clear the stored value; the other fields are not nullable.
    """

    title: str | _Unset = UNSET
    description: str | None | _Unset = UNSET
    priority: TaskPriority | _Unset = UNSET
    status: TaskStatus | _Unset = UNSET
    planned_date: date | None | _Unset = UNSET
    estimate_pomodoros: int | _Unset = UNSET
    completed_pomodoros: int | _Unset = UNSET


T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class Page(Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total: int


# ---- update outcomes (closed set) ----


@dataclass(slots=True, frozen=True)
class TaskUpdated:
    task: Task

    def unwrap(self) -> Task:
        return self.task


@dataclass(slots=True, frozen=True)
class TaskConflict:
    """The stored version moved on; `latest` is what is actually stored."""

    latest: Task
    expected_version: int
    code: str = field(default=STALE_DATA)

    def unwrap(self) -> Task:
        raise ConflictError(
            f"task {self.latest.id} changed elsewhere "
            f"(expected v{self.expected_version}, stored v{self.latest.version})",
            code=self.code,
            latest=self.latest,
        )


@dataclass(slots=True, frozen=True)
class TaskNotFound:
    task_id: str

    def unwrap(self) -> Task:
        raise NotFoundError("task", self.task_id)


TaskUpdateResult = TaskUpdated | TaskConflict | TaskNotFound
