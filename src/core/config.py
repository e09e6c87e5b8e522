"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

DEFAULT_API_BASE = "https://api.github.com"
DEFAULT_BOT_API_BASE = "https://api.telegram.org"

FAN_OUT_MODES = ("owner", "subscribers")
NOTIFICATION_METHODS = ("client", "bot_api")
NOTIFICATION_FORMATS = ("html", "markdown")


@dataclass(frozen=True)
class PollerConfig:
    """Settings for the reconciliation loop and the GitHub lookup client."""

    interval_secs: float = 60
    api_base: str = DEFAULT_API_BASE
    github_token: Optional[str] = None
    max_concurrency: int = 4
    timeout_secs: float = 10


@dataclass(frozen=True)
class NotificationConfig:
    """Notification routing and formatting consumed by notifier adapters."""

    method: str = "client"
    fan_out: str = "owner"
    format: str = "html"
    bot_api_base: str = DEFAULT_BOT_API_BASE
