"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union


@dataclass(frozen=True)
class TrackedRepository:
    """A GitHub repository being watched, bound to its owning chat."""

    id: str
    name: str
    url: str
    chat_id: int
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class CachedTag:
    """Last-known tag for a tracked repository.

    ``first_seen_at`` marks when the tag last changed, not when it was last
    checked.
    """

    repository_id: str
    tag: str
    first_seen_at: datetime


@dataclass(frozen=True)
class Subscription:
    """A chat subscribed to release notifications for a repository."""

    repository_id: str
    chat_id: int
    created_at: datetime


@dataclass(frozen=True)
class ReleaseNotice:
    """Everything a notifier needs to announce a new tag."""

    repository_name: str
    repository_url: str
    tag: str
    release_url: str


@dataclass(frozen=True)
class TagFound:
    tag: str


@dataclass(frozen=True)
class NoTag:
    """Nothing has been published yet; not an error."""


@dataclass(frozen=True)
class LookupFailed:
    """Transient lookup failure (network, non-success status, bad payload)."""

    detail: str


LookupOutcome = Union[TagFound, NoTag, LookupFailed]


@dataclass
class CycleReport:
    """Counters collected during one reconciliation pass."""

    checked: int = 0
    seeded: int = 0
    changed: int = 0
    unchanged: int = 0
    no_tag: int = 0
    failed: int = 0
    skipped: int = 0
    notifications_sent: int = 0
    delivery_failures: int = 0
