"""Telethon bot session factory for tagwatch.

The same session serves bot commands and, with notifications.method set to
"client", delivers release notices. Login happens later in ``app._run``
via ``client.start(bot_token=...)``.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from telethon import TelegramClient

from core.errors import ConfigError

DEFAULT_SESSION_NAME = "tagwatch"


def _api_id(raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError("API_ID must be a number") from exc


def build_client(session_name: Optional[str] = None) -> TelegramClient:
    """Create the bot's TelegramClient from API_ID/API_HASH in the environment."""

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    if not api_id or not api_hash:
        raise ConfigError("Missing API_ID or API_HASH in environment")

    session = session_name or os.getenv("SESSION_NAME") or DEFAULT_SESSION_NAME
    logging.getLogger(__name__).info("Opening bot session %s", session)
    return TelegramClient(session, _api_id(api_id), api_hash)
