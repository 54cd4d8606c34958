# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Per-owner timer preferences (durations, auto-start, timezone) live in the database and are
changed with /settings, not here.

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "FOCUS_APP_NAME": "App display name (default: focus).",
    "FOCUS_LOG_LEVEL": "Console logging level (default: INFO).",
    # Switches
    "FOCUS_CONSOLE_ENABLED": "Run the interactive console (true/false, default: true).",
    "FOCUS_SYNC_ENABLED": "Run the background stale-data guard (true/false, default: true).",
    # Account
    "FOCUS_OWNER_ID": "Owner id every task/session/setting is scoped to (default: local).",
    "FOCUS_DEFAULT_TIMEZONE": "IANA timezone for owners without stored settings (default: Asia/Seoul).",
    # Sync guard
    "FOCUS_SYNC_INTERVAL_SECONDS": "Seconds between stale-data polls (default: 15).",
    # Paths (gitignored)
    "FOCUS_DATA_DIR": "Local data directory (default: .local/focus).",
    "FOCUS_DB_PATH": "SQLite database path (default: <data_dir>/focus.sqlite3).",
    # Tuning
    "FOCUS_BUSY_TIMEOUT_SECONDS": "How long a writer waits for the database lock (default: 30).",
}
