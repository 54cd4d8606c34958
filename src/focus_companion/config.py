# src/focus_companion/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Per-user timer preferences live in the database, not here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "FOCUS"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally. Existing environment variables win."""
    from dotenv import load_dotenv

    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool
    sync_enabled: bool

    # ---- Account ----
    owner_id: str
    default_timezone: str

    # ---- Sync guard ----
    sync_interval_seconds: float

    # ---- Storage (ignored by git) ----
    data_dir: Path
    db_path: Path
    busy_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "focus") or "focus"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        sync_enabled = _env_bool(_k("SYNC_ENABLED"), True)

        owner_id = (_env(_k("OWNER_ID"), "local") or "local").strip()
        default_timezone = (_env(_k("DEFAULT_TIMEZONE"), "Asia/Seoul") or "Asia/Seoul").strip()

        # Reference clients poll every 15 seconds.
        sync_interval_seconds = _env_float(_k("SYNC_INTERVAL_SECONDS"), 15.0)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/focus"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "focus.sqlite3")
        busy_timeout_seconds = _env_float(_k("BUSY_TIMEOUT_SECONDS"), 30.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            sync_enabled=sync_enabled,
            owner_id=owner_id,
            default_timezone=default_timezone,
            sync_interval_seconds=sync_interval_seconds,
            data_dir=data_dir,
            db_path=db_path,
            busy_timeout_seconds=busy_timeout_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
