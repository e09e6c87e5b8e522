"""Telegram Bot API notification adapter.

Uses the plain Bot API over HTTPS so the poller can run headless, without a
Telethon session.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request
from typing import Any, Dict

from adapters.notification_formatting import BOT_API_PARSE_MODES, format_release_notification
from core.config import DEFAULT_BOT_API_BASE
from core.errors import DeliveryError
from core.models import ReleaseNotice


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        api_base: str = DEFAULT_BOT_API_BASE,
        mode: str = "html",
        timeout_secs: float = 10.0,
    ) -> None:
        if mode not in BOT_API_PARSE_MODES:
            raise ValueError(f"Unsupported notification format: {mode}")
        self._bot_token = bot_token
        self._api_base = api_base.rstrip("/")
        self._mode = mode
        self._timeout_secs = timeout_secs

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"{self._api_base}/bot{self._bot_token}/sendMessage"

    async def send(self, chat_id: int, notice: ReleaseNotice) -> None:
        """Send the formatted release notice via the Bot API."""

        payload = {
            "chat_id": chat_id,
            "text": format_release_notification(notice, self._mode),
            "parse_mode": BOT_API_PARSE_MODES[self._mode],
            "disable_web_page_preview": True,
        }
        await asyncio.to_thread(self._post, chat_id, payload)

    def _post(self, chat_id: int, payload: Dict[str, Any]) -> None:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout_secs):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise DeliveryError(f"Bot API error {e.code}: {body}", chat_id=chat_id, status_code=e.code) from e
        except OSError as e:
            # URLError reasons can include the endpoint, which contains the token.
            raise DeliveryError(f"Bot API request failed: {type(e).__name__}", chat_id=chat_id) from e
