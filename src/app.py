"""Application entry point for the tagwatch release bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.github_client import GitHubReleaseClient
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_bot_notifier import TelegramBotNotifier
from adapters.telegram_commands import publish_bot_commands, register_command_handlers
from adapters.telegram_notifier import TelegramClientNotifier
from client import build_client
from core.config import (
    FAN_OUT_MODES,
    NOTIFICATION_FORMATS,
    NOTIFICATION_METHODS,
    NotificationConfig,
    PollerConfig,
)
from core.destinations import build_destination_resolver
from core.errors import ConfigError
from core.ports import NotifierPort
from core.reconciler import ReleaseReconciler
from core.registration import RegistrationService

NAME = "TAGWATCH"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    if config.get("debug_locations", False):
        fmt = "%(asctime)s %(levelname)s %(name)s %(filename)s:%(lineno)d: %(message)s"
    datefmt = "%Y-%m-%dT%H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/tagwatch.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO; keep third-party noise at WARNING unless debugging.
    if level > logging.DEBUG:
        logging.getLogger("telethon").setLevel(logging.WARNING)


def _poller_config() -> PollerConfig:
    return PollerConfig(
        interval_secs=settings.POLL_INTERVAL_SECS,
        api_base=settings.GITHUB_API_BASE,
        github_token=os.getenv("GITHUB_TOKEN") or None,
        max_concurrency=settings.MAX_CONCURRENCY,
        timeout_secs=settings.LOOKUP_TIMEOUT_SECS,
    )


def _notification_config() -> NotificationConfig:
    config = NotificationConfig(
        method=settings.NOTIFICATION_METHOD,
        fan_out=settings.FAN_OUT,
        format=settings.NOTIFICATION_FORMAT,
        bot_api_base=settings.BOT_API_BASE,
    )
    if config.method not in NOTIFICATION_METHODS:
        raise ConfigError(f"notifications.method must be one of {', '.join(NOTIFICATION_METHODS)}")
    if config.fan_out not in FAN_OUT_MODES:
        raise ConfigError(f"notifications.fan_out must be one of {', '.join(FAN_OUT_MODES)}")
    if config.format not in NOTIFICATION_FORMATS:
        raise ConfigError(f"notifications.format must be one of {', '.join(NOTIFICATION_FORMATS)}")
    return config


def _bot_token() -> str:
    bot_token = os.getenv("BOT_TOKEN")
    if not bot_token:
        raise ConfigError("BOT_TOKEN is required")
    return bot_token


def _bot_api_notifier(notification_config: NotificationConfig) -> TelegramBotNotifier:
    if notification_config.format != "html":
        raise ConfigError("bot_api notifications only support notifications.format=html")
    return TelegramBotNotifier(_bot_token(), api_base=notification_config.bot_api_base)


def _open_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    logging.getLogger(__name__).info("Database ready at %s", settings.DB_PATH)
    return storage


def _build_reconciler(
    storage: SQLiteStorage,
    notifier: NotifierPort,
    notification_config: NotificationConfig,
) -> ReleaseReconciler:
    poller_config = _poller_config()
    lookup = GitHubReleaseClient(
        api_base=poller_config.api_base,
        token=poller_config.github_token,
        timeout_secs=poller_config.timeout_secs,
    )
    return ReleaseReconciler(
        repositories=storage,
        cache=storage,
        lookup=lookup,
        notifier=notifier,
        destinations=build_destination_resolver(notification_config.fan_out, storage),
        config=poller_config,
    )


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting tagwatch")

    storage = _open_storage()
    notification_config = _notification_config()
    bot_token = _bot_token()
    client = build_client()

    # Select the notification adapter based on configuration to keep the core
    # reconciler independent from delivery details.
    if notification_config.method == "bot_api":
        notifier: NotifierPort = _bot_api_notifier(notification_config)
    else:
        notifier = TelegramClientNotifier(client, mode=notification_config.format)
    logger.info("Selected notification method - %s", notification_config.method)

    reconciler = _build_reconciler(storage, notifier, notification_config)
    registration = RegistrationService(
        repositories=storage,
        subscriptions=storage,
        cache=storage,
        reconciler=reconciler,
        fan_out=notification_config.fan_out,
    )
    register_command_handlers(client, registration)

    # Explicit lifecycle management makes start/shutdown behavior obvious.
    client.start(bot_token=bot_token)
    client.loop.run_until_complete(publish_bot_commands(client))
    poller_task = client.loop.create_task(reconciler.run_forever())
    logger.info("Bot connected. Listening for commands...")
    try:
        client.run_until_disconnected()
    finally:
        poller_task.cancel()


async def _poll_until_signalled(reconciler: ReleaseReconciler) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises
            # KeyboardInterrupt there.
            break
    await reconciler.run_forever(stop_event)


def _poll() -> None:
    _print_banner()
    _configure_logging()
    logging.getLogger(__name__).info("Starting headless poller")

    storage = _open_storage()
    notification_config = _notification_config()
    notifier = _bot_api_notifier(notification_config)
    reconciler = _build_reconciler(storage, notifier, notification_config)
    asyncio.run(_poll_until_signalled(reconciler))


def _once() -> None:
    _configure_logging()
    storage = _open_storage()
    notification_config = _notification_config()
    notifier = _bot_api_notifier(notification_config)
    reconciler = _build_reconciler(storage, notifier, notification_config)
    report = asyncio.run(reconciler.poll_once())
    print(
        f"checked={report.checked} seeded={report.seeded} changed={report.changed} "
        f"unchanged={report.unchanged} no_tag={report.no_tag} failed={report.failed} "
        f"skipped={report.skipped} sent={report.notifications_sent} "
        f"delivery_failures={report.delivery_failures}"
    )


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="tagwatch")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the bot and the release poller")
    subparsers.add_parser("poll", help="Run the release poller only, notifying via the Bot API")
    subparsers.add_parser("once", help="Run a single polling cycle and print a summary")

    args = parser.parse_args(argv)
    if args.command == "poll":
        _poll()
        return
    if args.command == "once":
        _once()
        return
    _run()


if __name__ == "__main__":
    main()
