"""Ports (interfaces) used by the core reconciler and registration flows.

Ports define the minimal contracts for storage, lookup, and notification
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Set

from core.models import CachedTag, LookupOutcome, ReleaseNotice, TrackedRepository


class TrackedRepositoryStore(Protocol):
    """Persistence for tracked repositories."""

    def list_repositories(self) -> List[TrackedRepository]:
        ...

    def list_repositories_for_chat(self, chat_id: int) -> List[TrackedRepository]:
        ...

    def get_repository(self, repository_id: str) -> Optional[TrackedRepository]:
        ...

    def get_repository_by_url(self, url: str) -> Optional[TrackedRepository]:
        ...

    def save_repository(self, repository: TrackedRepository) -> None:
        ...

    def delete_repository(self, repository_id: str) -> None:
        ...


class TagCacheStore(Protocol):
    """Per-repository last-known tag."""

    def get_cached_tag(self, repository_id: str) -> Optional[CachedTag]:
        ...

    def upsert_cached_tag(self, repository_id: str, tag: str, observed_at: datetime) -> Optional[str]:
        """Atomically store ``tag`` and return the tag it replaced.

        ``first_seen_at`` only moves when the stored tag actually changes.
        """
        ...


class SubscriptionStore(Protocol):
    """Many-to-many chat subscriptions per repository."""

    def subscribe(self, repository_id: str, chat_id: int) -> bool:
        ...

    def unsubscribe(self, repository_id: str, chat_id: int) -> bool:
        ...

    def list_subscriber_ids(self, repository_id: str) -> Set[int]:
        ...

    def list_subscribed_repository_ids(self, chat_id: int) -> Set[str]:
        ...


class DestinationResolver(Protocol):
    """Decides which chats hear about a repository's new tag."""

    def destinations_for(self, repository: TrackedRepository) -> Set[int]:
        ...


class VersionLookupPort(Protocol):
    """Resolves the latest published tag for a repository."""

    async def lookup(self, owner: str, repo: str) -> LookupOutcome:
        ...


class NotifierPort(Protocol):
    """Notification operations required by the reconciler."""

    async def send(self, chat_id: int, notice: ReleaseNotice) -> None:
        ...
