# src/focus_companion/storage/db.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from ..core.errors import TransientFailure

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    One open write transaction.

    Obtained only through Database.unit_of_work(): everything executed through
    it commits together when the `with` block exits normally, and is rolled back
    when it raises. Stores never commit on their own inside a unit of work.
    """

    __slots__ = ("_conn",)

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.OperationalError as e:
            raise TransientFailure(f"write failed: {e}") from e

    def fetchone(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> sqlite3.Row | None:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()


class Database:
    """
    SQLite database shared by the task, session and preference stores.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each unit of work / read opens its own SQLite connection
    - writers serialize on BEGIN IMMEDIATE; that is the only lock in the system
    """

    def __init__(self, db_path: str | Path = "focus.sqlite3", *, busy_timeout_seconds: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._timeout = float(busy_timeout_seconds)
        self._ensure_schema()
        logger.info("Database ready db=%s", self._db_path)

    @property
    def path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- connections ----

    def _get_conn(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are opened explicitly by unit_of_work().
        conn = sqlite3.connect(str(self._db_path), timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

    @contextlib.contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        """begin -> apply writes -> commit, or rollback on any exception."""
        conn = self._get_conn()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                raise TransientFailure(f"could not begin transaction: {e}") from e

            try:
                yield UnitOfWork(conn)
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

            try:
                conn.execute("COMMIT")
            except sqlite3.OperationalError as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise TransientFailure(f"could not commit transaction: {e}") from e
        finally:
            conn.close()

    @contextlib.contextmanager
    def reader(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            yield conn
        finally:
            conn.close()

    # ---- schema ----

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute("BEGIN")
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    status TEXT NOT NULL DEFAULT 'todo',
                    planned_date TEXT,
                    estimate_pomodoros INTEGER NOT NULL DEFAULT 1,
                    completed_pomodoros INTEGER NOT NULL DEFAULT 0,
                    version INTEGER NOT NULL DEFAULT 1 CHECK (version >= 1),
                    completed_at REAL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    task_id TEXT REFERENCES tasks(id),
                    session_type TEXT NOT NULL,
                    duration_sec INTEGER NOT NULL CHECK (duration_sec > 0),
                    started_at REAL NOT NULL,
                    ended_at REAL,
                    status TEXT NOT NULL DEFAULT 'in_progress',
                    cancelled_by TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS timer_settings (
                    owner_id TEXT PRIMARY KEY,
                    focus_min INTEGER NOT NULL DEFAULT 25,
                    short_break_min INTEGER NOT NULL DEFAULT 5,
                    long_break_min INTEGER NOT NULL DEFAULT 15,
                    long_break_interval INTEGER NOT NULL DEFAULT 4,
                    auto_start_break INTEGER NOT NULL DEFAULT 0,
                    auto_start_focus INTEGER NOT NULL DEFAULT 0,
                    sound_enabled INTEGER NOT NULL DEFAULT 1,
                    timezone TEXT,
                    updated_at REAL NOT NULL DEFAULT 0
                )
                """
            )

            def add_col(table: str, name: str, decl: str) -> None:
                cur.execute(f"PRAGMA table_info({table})")
                cols = {row["name"] for row in cur.fetchall()}
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                logger.info("Database migration: added column %s.%s", table, name)

            # Columns that arrived after the first schema.
            add_col("tasks", "description", "TEXT")
            add_col("sessions", "cancelled_by", "TEXT")
            add_col("timer_settings", "timezone", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner_status ON tasks(owner_id, status, updated_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner_planned ON tasks(owner_id, planned_date)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner_completed ON tasks(owner_id, completed_at)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_owner_status_ended "
                "ON sessions(owner_id, status, ended_at)"
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_sessions_owner_started ON sessions(owner_id, started_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_sessions_task ON sessions(task_id)")

            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
