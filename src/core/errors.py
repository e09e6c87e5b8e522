"""Exception hierarchy shared by the core and adapters."""

from __future__ import annotations

from typing import Optional


class TagwatchError(Exception):
    """Base exception for all tagwatch errors."""


class ConfigError(TagwatchError):
    """Invalid or missing configuration."""


class InvalidRepositoryUrl(TagwatchError, ValueError):
    """Repository URL is not a decomposable GitHub locator."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Invalid GitHub repository URL: {url}")


class DeliveryError(TagwatchError):
    """A notification could not be delivered to a chat."""

    def __init__(self, message: str, *, chat_id: int, status_code: Optional[int] = None) -> None:
        self.chat_id = chat_id
        self.status_code = status_code
        super().__init__(message)


class RegistrationError(TagwatchError):
    """A command was rejected; the message is safe to show to the chat."""
