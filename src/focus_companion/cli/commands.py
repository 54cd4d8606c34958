# src/focus_companion/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import date, timedelta
from typing import Any, cast

from ..core.errors import STALE_DATA, ConflictError, FocusError, NotFoundError, TransientFailure, ValidationError
from ..core.state import AppState
from ..sessions.cycle import next_timer_mode
from ..sessions.recovery import RECOVERED_TIMER_MODE
from ..sessions.session_models import Session, SessionType
from ..sync.sync_guard import STALE_NOTICE, StaleGuardedEditor
from ..sync.runner import StateSyncView, StateTaskSource
from ..tasks.task_models import Task, TaskConflict, TaskFilter, TaskNotFound, TaskPatch, TaskPriority, TaskStatus

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /start, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str, emit: CommandEmitter | None = None) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def friendly_error_message(err: FocusError) -> str:
    if isinstance(err, ConflictError):
        if err.code == STALE_DATA:
            return STALE_NOTICE
        return f"Conflict: {err}"
    if isinstance(err, NotFoundError):
        return f"Not found: {err.entity} {err.entity_id}"
    if isinstance(err, ValidationError):
        return f"Invalid input: {err}"
    if isinstance(err, TransientFailure):
        return "Storage is busy, nothing was changed. Try again."
    return str(err)


# ---- rendering helpers ----


def _fmt_task(i: int, t: Task) -> str:
    mark = {TaskStatus.TODO: " ", TaskStatus.IN_PROGRESS: "~", TaskStatus.DONE: "x"}[t.status]
    planned = f" @{t.planned_date.isoformat()}" if t.planned_date else ""
    return (
        f"{i:>2}. [{mark}] {t.title} ({t.priority.value}) "
        f"{t.completed_pomodoros}/{t.estimate_pomodoros}{planned}  #{t.id[:8]} v{t.version}"
    )


def _fmt_session(s: Session) -> str:
    task = f" task=#{s.task_id[:8]}" if s.task_id else ""
    return f"{s.session_type.value} {s.duration_minutes}min started {s.started_at.isoformat()}{task}"


def _refresh_visible(state: AppState) -> list[Task]:
    """Reload the visible list; what we load ourselves is never reported as stale."""
    with state.lock:
        state.visible_tasks = list(StateTaskSource(state).fetch_visible_tasks())
        state.sync_baseline.rebase(state.visible_tasks)
        return state.visible_tasks


def _resolve_task(state: AppState, ref: str) -> Task:
    """A task reference is a 1-based index into the visible list, or an id prefix."""
    visible = state.visible_tasks or _refresh_visible(state)
    if ref.isdigit():
        idx = int(ref)
        if 1 <= idx <= len(visible):
            return visible[idx - 1]
    matches = [t for t in visible if t.id.startswith(ref.lstrip("#"))]
    if len(matches) == 1:
        return matches[0]
    raise NotFoundError("task", ref)


def _parse_bool(raw: str) -> bool:
    v = raw.strip().lower()
    if v in ("on", "1", "true", "yes", "y"):
        return True
    if v in ("off", "0", "false", "no", "n"):
        return False
    raise ValidationError(f"expected on/off, got {raw!r}")


def _parse_int(raw: str) -> int:
    try:
        return int(raw)
    except ValueError as e:
        raise ValidationError(f"expected a number, got {raw!r}") from e


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError as e:
        raise ValidationError(f"expected YYYY-MM-DD, got {raw!r}") from e


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    prefs = state.preferences.get(state.owner_id)
    active = state.sessions.active_session(state.owner_id)
    state.active_session = active
    running = _fmt_session(active) if active else "none"
    return (
        "Status:\n"
        f"  Owner: {state.owner_id} ({prefs.timezone})\n"
        f"  Timer mode: {state.timer_mode.value}\n"
        f"  Running session: {running}\n"
        f"  Task filter: {state.task_filter.value}\n"
        f"  Database: {state.db.path}"
    )


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks                           -> list with the current filter
    /tasks all|today|tomorrow|completed
    """
    if args:
        try:
            state.task_filter = TaskFilter(args[0].lower())
        except ValueError:
            return "Usage: /tasks [all|today|tomorrow|completed]"

    tasks = _refresh_visible(state)
    if not tasks:
        return f"No tasks ({state.task_filter.value})."
    lines = [f"Tasks ({state.task_filter.value}):"]
    lines.extend(_fmt_task(i, t) for i, t in enumerate(tasks, start=1))
    return "\n".join(lines)


def cmd_add(state: AppState, args: list[str]) -> str:
    """/add <title...>  (planned for today/tomorrow when that filter is active)"""
    title = " ".join(args).strip()
    if not title:
        return "Usage: /add <title>"

    planned: date | None = None
    if state.task_filter == TaskFilter.TODAY:
        planned = state.today()
    elif state.task_filter == TaskFilter.TOMORROW:
        planned = state.today(1)

    task = state.task_store.create_task(state.owner_id, title=title, planned_date=planned)
    _refresh_visible(state)
    return f"Added #{task.id[:8]}: {task.title}"


_EDIT_FIELDS = ("title", "description", "priority", "status", "planned", "estimate", "done_count")


def _build_patch(field_name: str, raw: str) -> TaskPatch:
    match field_name:
        case "title":
            return TaskPatch(title=raw)
        case "description":
            return TaskPatch(description=None if raw.lower() == "none" else raw)
        case "priority":
            try:
                return TaskPatch(priority=TaskPriority(raw.lower()))
            except ValueError as e:
                raise ValidationError("priority must be low|medium|high") from e
        case "status":
            try:
                return TaskPatch(status=TaskStatus(raw.lower()))
            except ValueError as e:
                raise ValidationError("status must be todo|in_progress|done") from e
        case "planned":
            return TaskPatch(planned_date=None if raw.lower() == "none" else _parse_date(raw))
        case "estimate":
            return TaskPatch(estimate_pomodoros=_parse_int(raw))
        case "done_count":
            return TaskPatch(completed_pomodoros=_parse_int(raw))
        case _:
            raise ValidationError(f"field must be one of: {', '.join(_EDIT_FIELDS)}")


def _apply_edit(state: AppState, task: Task, patch: TaskPatch, emit: CommandEmitter | None) -> str:
    editor = StaleGuardedEditor(state.task_store, state.owner_id, StateSyncView(state, emit=None))
    with state.lock:
        state.pending_edits[task.id] = patch
    try:
        result = editor.edit(task, patch, state.visible_tasks)
    finally:
        with state.lock:
            state.pending_edits.pop(task.id, None)
    # The editor patched the list in place; reload so ordering and baseline match the store.
    _refresh_visible(state)

    match result:
        case TaskConflict(latest=latest):
            if emit:
                with contextlib.suppress(Exception):
                    emit(f"#{latest.id[:8]} is now v{latest.version}; re-run the edit to apply it.")
            return STALE_NOTICE
        case TaskNotFound(task_id=task_id):
            return f"Task #{task_id[:8]} no longer exists."
        case _:
            updated = result.unwrap()
            return f"Updated #{updated.id[:8]} -> v{updated.version}"


def cmd_edit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/edit <task> <field> <value...>"""
    if len(args) < 3:
        return f"Usage: /edit <task> <{'|'.join(_EDIT_FIELDS)}> <value>"
    task = _resolve_task(state, args[0])
    patch = _build_patch(args[1].lower(), " ".join(args[2:]))
    return _apply_edit(state, task, patch, emit)


def cmd_done(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /done <task>"
    task = _resolve_task(state, args[0])
    return _apply_edit(state, task, TaskPatch(status=TaskStatus.DONE), emit)


def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <task>"
    task = _resolve_task(state, args[0])
    removed = state.task_store.delete_task(state.owner_id, task.id)
    _refresh_visible(state)
    return f"Deleted #{task.id[:8]} (and {removed} session(s))."


def cmd_start(state: AppState, args: list[str]) -> str:
    """
    /start                 -> start the current timer mode
    /start focus [task]    -> focus, optionally linked to a task
    /start short|long      -> break
    """
    session_type = SessionType.parse(args[0]) if args else state.timer_mode
    task_id: str | None = None
    if session_type == SessionType.FOCUS and len(args) >= 2:
        task_id = _resolve_task(state, args[1]).id

    running = state.sessions.active_session(state.owner_id)
    if running is not None:
        return f"A session is already running ({_fmt_session(running)}). Use /complete or /cancel."

    session = state.sessions.start(state.owner_id, session_type, task_id=task_id)
    state.active_session = session
    state.timer_mode = session_type
    return f"Started {_fmt_session(session)}"


def _current_session(state: AppState) -> Session | None:
    session = state.active_session or state.sessions.active_session(state.owner_id)
    state.active_session = session
    return session


def cmd_complete(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    session = _current_session(state)
    if session is None:
        return "No running session."

    done = state.sessions.complete(state.owner_id, session.id)
    state.active_session = None

    prefs = state.preferences.get(state.owner_id)
    focus_count = state.stats.daily(state.owner_id, state.today()).focus_count
    next_mode, auto_start = next_timer_mode(done.session_type, focus_count, prefs)
    state.timer_mode = next_mode
    _refresh_visible(state)

    reply = f"Completed {done.session_type.value}. Next: {next_mode.value}."
    if prefs.sound_enabled and emit:
        with contextlib.suppress(Exception):
            emit("\a")
    if auto_start:
        started = state.sessions.start(state.owner_id, next_mode)
        state.active_session = started
        reply += f"\nAuto-started {_fmt_session(started)}"
    return reply


def cmd_cancel(state: AppState, args: list[str]) -> str:
    session = _current_session(state)
    if session is None:
        return "No running session."
    state.sessions.cancel(state.owner_id, session.id)
    state.active_session = None
    state.timer_mode = RECOVERED_TIMER_MODE
    return f"Cancelled {session.session_type.value}."


def cmd_today(state: AppState, args: list[str]) -> str:
    day = _parse_date(args[0]) if args else state.today()
    s = state.stats.daily(state.owner_id, day)
    return (
        f"{s.date.isoformat()}: {s.focus_count} focus session(s), "
        f"{s.total_focus_minutes} min, {s.completed_tasks} task(s) done"
    )


def cmd_week(state: AppState, args: list[str]) -> str:
    start = _parse_date(args[0]) if args else state.today() - timedelta(days=6)
    w = state.stats.weekly(state.owner_id, start)
    lines = [f"Week from {w.start.isoformat()} ({w.total_minutes} min):"]
    for i in range(7):
        day = start + timedelta(days=i)
        minutes = w.minutes_on(day)
        lines.append(f"  {day.isoformat()} {minutes:>4} min {'#' * (minutes // 5)}")
    return "\n".join(lines)


_SETTING_PARSERS: dict[str, Callable[[str], Any]] = {
    "focus_min": _parse_int,
    "short_break_min": _parse_int,
    "long_break_min": _parse_int,
    "long_break_interval": _parse_int,
    "auto_start_break": _parse_bool,
    "auto_start_focus": _parse_bool,
    "sound_enabled": _parse_bool,
    "timezone": str,
}


def cmd_settings(state: AppState, args: list[str]) -> str:
    """
    /settings              -> show
    /settings <key> <val>  -> update one value
    """
    if len(args) >= 2:
        key = args[0].lower()
        parser = _SETTING_PARSERS.get(key)
        if parser is None:
            return f"Unknown setting. Keys: {', '.join(_SETTING_PARSERS)}"
        state.preferences.update(state.owner_id, **{key: parser(args[1])})
        if key == "timezone":
            _refresh_visible(state)
    elif args:
        return "Usage: /settings <key> <value>"

    prefs = state.preferences.get(state.owner_id)
    lines = ["Timer settings:"]
    for key in _SETTING_PARSERS:
        lines.append(f"  {key} = {getattr(prefs, key)}")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show timer mode, running session and filter.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [all|today|tomorrow|completed].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <title>.")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <task> <field> <value>.")
registry.register("done", cmd_done, help_text="Mark a task done: /done <task>.")
registry.register("rm", cmd_rm, help_text="Delete a task and its sessions: /rm <task>.")
registry.register("start", cmd_start, help_text="Start a session: /start [focus|short|long] [task].")
registry.register("complete", cmd_complete, help_text="Complete the running session.")
registry.register("cancel", cmd_cancel, help_text="Cancel the running session.")
registry.register("today", cmd_today, help_text="Daily stats: /today [YYYY-MM-DD].")
registry.register("week", cmd_week, help_text="Weekly focus minutes: /week [YYYY-MM-DD].")
registry.register("settings", cmd_settings, help_text="Show or change timer settings: /settings [key value].")
