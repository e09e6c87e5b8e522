"""Telegram notification adapter for the running Telethon bot client.

Sends release notices through the same connection that serves bot commands.
"""

from __future__ import annotations

from adapters.notification_formatting import CLIENT_PARSE_MODES, format_release_notification
from core.models import ReleaseNotice


class TelegramClientNotifier:
    """Notifier adapter that sends messages with a connected TelegramClient."""

    def __init__(self, client, mode: str = "html") -> None:
        if mode not in CLIENT_PARSE_MODES:
            raise ValueError(f"Unsupported notification format: {mode}")
        self._client = client
        self._mode = mode

    async def send(self, chat_id: int, notice: ReleaseNotice) -> None:
        """Send the formatted release notice to a chat."""

        message = format_release_notification(notice, self._mode)
        await self._client.send_message(
            chat_id,
            message,
            parse_mode=CLIENT_PARSE_MODES[self._mode],
            link_preview=False,
        )
