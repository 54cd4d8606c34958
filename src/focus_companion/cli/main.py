# src/focus_companion/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, repairs abandoned sessions, then starts:
- the sync guard in a background thread (optional),
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import bootstrap_client, create_initial_state
from ..config import get_settings
from ..connectors.console_connector import emit, run_console_loop
from ..logging_setup import setup_logging
from ..sync.runner import SyncBackgroundRunner, start_sync_in_background

logger = logging.getLogger(__name__)


def _shutdown(state) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    # Database uses short-lived sqlite connections per call; close is a no-op hook.
    try:
        state.db.close()
    except Exception:
        logger.debug("Database close failed.", exc_info=True)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/focus")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "focus"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    reset_count, _ = bootstrap_client(state)
    if reset_count:
        emit(f"Recovered {reset_count} unfinished session(s); timer set to {state.timer_mode.value}.")

    sync_runner: SyncBackgroundRunner | None = None
    if settings.sync_enabled:
        sync_runner = start_sync_in_background(state, emit=emit)

    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
        if not settings.console_enabled:
            signal.signal(signal.SIGINT, _handle_signal)
    except (ValueError, OSError):
        # Some platforms may not support SIGTERM, etc.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running the sync guard only. Press Ctrl+C to stop.")
            stop_main.wait()

    finally:
        if sync_runner is not None:
            sync_runner.stop()
            sync_runner.join(timeout=10.0)

        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
