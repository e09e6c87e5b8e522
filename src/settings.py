"""Static configuration for tagwatch.

Non-secret settings (polling, notifications, logging) live in a single JSON
file for quick edits without touching Python. Secrets stay in the
environment (.env) and are read where they are needed.
"""

import json
import os

from dotenv import load_dotenv

from core.config import DEFAULT_API_BASE, DEFAULT_BOT_API_BASE

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

# config.json sits at the project root unless TAGWATCH_CONFIG points elsewhere.
CONFIG_PATH = os.getenv("TAGWATCH_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database. DATABASE_PATH wins so containers can
# mount a volume without editing config.json.
_database = _CONFIG.get("database", {})
DB_PATH = _resolve_path(os.getenv("DATABASE_PATH") or _database.get("path", "tagwatch.db"))

# Reconciliation loop settings.
# - POLL_INTERVAL_SECS: wait between two polling cycles
# - GITHUB_API_BASE: overridable for testing against a local server
# - MAX_CONCURRENCY: repositories looked up in parallel per cycle
# - LOOKUP_TIMEOUT_SECS: HTTP timeout for each GitHub request
_poller = _CONFIG.get("poller", {})
POLL_INTERVAL_SECS = float(_poller.get("interval_secs", 60))
GITHUB_API_BASE = os.getenv("GITHUB_API_BASE") or _poller.get("api_base", DEFAULT_API_BASE)
MAX_CONCURRENCY = int(_poller.get("max_concurrency", 4))
LOOKUP_TIMEOUT_SECS = float(_poller.get("timeout_secs", 10))

# Notification method switches adapters without changing core logic.
# - NOTIFICATION_METHOD: "client" (Telethon bot session) or "bot_api"
# - FAN_OUT: "owner" (owning chat only) or "subscribers" (every subscriber)
# - NOTIFICATION_FORMAT: "html" or "markdown"
_notifications = _CONFIG.get("notifications", {})
NOTIFICATION_METHOD = _notifications.get("method", "client")
FAN_OUT = _notifications.get("fan_out", "owner")
NOTIFICATION_FORMAT = _notifications.get("format", "html")
BOT_API_BASE = _notifications.get("bot_api_base", DEFAULT_BOT_API_BASE)

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
