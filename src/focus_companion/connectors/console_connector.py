# src/focus_companion/connectors/console_connector.py

from __future__ import annotations

import logging
from datetime import datetime

from ..cli.commands import friendly_error_message
from ..cli.commands import registry as command_registry
from ..core.errors import FocusError
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def emit(text: str) -> None:
    # Immediate user-visible feedback (stale-data notices, auto-start, bell).
    print(f"[{_ts_local()}] {text}", flush=True)


def handle_line(state: AppState, line: str) -> str | None:
    """Run one console line; domain errors become short replies instead of tracebacks."""
    try:
        with state.lock:
            return command_registry.handle(state, line, emit=emit)
    except FocusError as e:
        logger.info("Command rejected: %s (%s)", line, e)
        return friendly_error_message(e)
    except Exception:
        logger.exception("Command handler crashed.")
        return "Internal error while handling a command."


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (owner=%s).", state.owner_id)
    _print_ts("[CONSOLE] Use /help for commands, /add <title> to add a task, /exit to quit.\n")

    while True:
        try:
            user_input = input(f"[{state.timer_mode.value}] > ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        reply = handle_line(state, user_input)
        if reply is None:
            _print_ts("Not a command. Use /help to list available commands.")
            continue
        _print_ts(reply)

    logger.info("Console connector finished.")
