# src/focus_companion/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

APP_LOGGER_PREFIX = "focus_companion."

# Console thresholds by logger-name prefix; first match wins.
# The sync guard polls from a background thread and would interleave with the prompt.
CONSOLE_THRESHOLDS: tuple[tuple[str, int], ...] = (
    ("focus_companion.sync.", logging.WARNING),
    ("py.warnings", logging.ERROR),
)

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(threadName)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _ConsoleNoiseFilter(logging.Filter):
    """Per-prefix thresholds for the console; app logs pass, anything foreign needs ERROR."""

    def __init__(
        self,
        thresholds: tuple[tuple[str, int], ...] = CONSOLE_THRESHOLDS,
        app_prefix: str = APP_LOGGER_PREFIX,
    ) -> None:
        super().__init__()
        self._thresholds = thresholds
        self._app_prefix = app_prefix

    def filter(self, record: logging.LogRecord) -> bool:
        for prefix, level in self._thresholds:
            if record.name.startswith(prefix):
                return record.levelno >= level
        if record.name.startswith(self._app_prefix):
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/focus",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 2_000_000,
    backup_count: int = 3,
) -> Path:
    """
    Console on stderr (filtered) plus a rotating `focus.log` with everything.

    Safe to call again: existing root handlers are replaced. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "focus.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    return log_file
