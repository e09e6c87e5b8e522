"""Telethon bot command adapter.

Maps incoming messages onto the core registration service. Reply building
is kept separate from the Telethon handler so it can be tested without a
live client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from telethon import TelegramClient, events, functions, types

from adapters.notification_formatting import format_tracked_list
from core.commands import COMMAND_DESCRIPTIONS, fallback_text, help_text, parse_command, parse_track_args
from core.errors import TagwatchError
from core.registration import RegistrationService

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class BotReply:
    text: str
    # None disables entity parsing in Telethon, so URLs with "_" stay intact.
    parse_mode: Optional[str] = None


async def build_reply(registration: RegistrationService, chat_id: int, text: str) -> BotReply:
    """Return the reply for one incoming message."""

    command = parse_command(text)
    if command is None or not command.known:
        return BotReply(fallback_text(text))

    try:
        if command.name == "track":
            track_args = parse_track_args(command.args)
            if track_args is None:
                return BotReply("Usage: /track <name> <url>")
            LOGGER.info("Tracking repository: %s (%s)", track_args.name, track_args.url)
            result = await registration.track(chat_id, track_args.name, track_args.url)
            return BotReply(result.message)
        if command.name == "untrack":
            if len(command.args) != 1:
                return BotReply("Usage: /untrack <url>")
            return BotReply(registration.untrack(chat_id, command.args[0]))
        if command.name == "list":
            return BotReply(format_tracked_list(registration.list_for_chat(chat_id)), parse_mode="html")
    except TagwatchError as exc:
        return BotReply(str(exc))

    return BotReply(help_text())


async def publish_bot_commands(client: TelegramClient) -> None:
    """Register the command list with Telegram so clients can autocomplete it."""

    commands = [
        types.BotCommand(command=name, description=description)
        for name, _, description in COMMAND_DESCRIPTIONS
    ]
    try:
        await client(
            functions.bots.SetBotCommandsRequest(
                scope=types.BotCommandScopeDefault(),
                lang_code="",
                commands=commands,
            )
        )
    except Exception:
        LOGGER.warning("Failed to set Telegram bot commands", exc_info=True)


def register_command_handlers(client: TelegramClient, registration: RegistrationService) -> None:
    """Attach the single NewMessage handler that serves every command."""

    # Single handler keeps Telethon integration minimal and defers all command
    # semantics to the core registration service.
    @client.on(events.NewMessage(incoming=True))
    async def handler(event) -> None:
        text = event.raw_text or ""
        if not text.strip():
            return
        try:
            reply = await build_reply(registration, event.chat_id, text)
            await event.respond(reply.text, parse_mode=reply.parse_mode, link_preview=False)
        except Exception:
            LOGGER.exception("Error while handling message in chat %s", event.chat_id)
