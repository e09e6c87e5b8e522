"""Track/untrack/list semantics behind the bot commands.

Registration shares the store contracts and the reconciler's per-repository
locks with the background loop, so a manual /track and a running poll never
interleave cache writes for the same repository.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from core.errors import RegistrationError
from core.models import TrackedRepository
from core.ports import SubscriptionStore, TagCacheStore, TrackedRepositoryStore
from core.reconciler import ReleaseReconciler
from core.repository_urls import validate_repository_url

LOGGER = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
ALREADY_TRACKING = "already_tracking"


@dataclass(frozen=True)
class TrackResult:
    status: str
    repository: TrackedRepository
    message: str


@dataclass(frozen=True)
class TrackedListing:
    repository: TrackedRepository
    latest_tag: Optional[str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegistrationService:
    """Creates, updates, and removes tracked repositories for chats."""

    def __init__(
        self,
        repositories: TrackedRepositoryStore,
        subscriptions: SubscriptionStore,
        cache: TagCacheStore,
        reconciler: ReleaseReconciler,
        fan_out: str = "owner",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repositories = repositories
        self._subscriptions = subscriptions
        self._cache = cache
        self._reconciler = reconciler
        self._fan_out = fan_out
        self._clock = clock or _utcnow

    async def track(self, chat_id: int, name: str, url: str) -> TrackResult:
        """Start tracking ``url`` for ``chat_id`` and seed its cached tag."""

        name = name.strip()
        if not name:
            raise RegistrationError("Please provide a name for the repository.")
        url = validate_repository_url(url)

        existing = self._repositories.get_repository_by_url(url)
        now = self._clock()
        if existing is None:
            repository = TrackedRepository(
                id=str(uuid.uuid4()),
                name=name,
                url=url,
                chat_id=chat_id,
                created_at=now,
                updated_at=now,
            )
            self._repositories.save_repository(repository)
            self._subscriptions.subscribe(repository.id, chat_id)
            await self._seed(repository)
            LOGGER.info("Chat %s started tracking %s", chat_id, url)
            return TrackResult(CREATED, repository, f"Now tracking {name} ({url}).")

        if self._is_tracking(existing, chat_id):
            return TrackResult(
                ALREADY_TRACKING,
                existing,
                f"This chat is already tracking {name} ({url}).",
            )

        updated = replace(existing, name=name, updated_at=now)
        self._repositories.save_repository(updated)
        await self._seed(updated)
        if self._fan_out == "owner":
            # Ownership moves only once the cache holds the current tag.
            updated = replace(updated, chat_id=chat_id, updated_at=self._clock())
            self._repositories.save_repository(updated)
        self._subscriptions.subscribe(updated.id, chat_id)
        LOGGER.info("Chat %s updated tracking for %s", chat_id, url)
        return TrackResult(UPDATED, updated, f"Updated tracking for {name} ({url}).")

    def untrack(self, chat_id: int, url: str) -> str:
        """Stop notifying ``chat_id`` about ``url``; return the reply text."""

        url = validate_repository_url(url)
        existing = self._repositories.get_repository_by_url(url)
        if existing is None or not self._is_tracking(existing, chat_id):
            raise RegistrationError(f"This chat is not tracking {url}.")

        if self._fan_out == "owner":
            self._delete(existing)
        else:
            self._subscriptions.unsubscribe(existing.id, chat_id)
            if not self._subscriptions.list_subscriber_ids(existing.id):
                self._delete(existing)
        LOGGER.info("Chat %s stopped tracking %s", chat_id, url)
        return f"Stopped tracking {existing.name} ({url})."

    def list_for_chat(self, chat_id: int) -> List[TrackedListing]:
        """Return the repositories visible to a chat with their cached tags."""

        if self._fan_out == "owner":
            repositories = self._repositories.list_repositories_for_chat(chat_id)
        else:
            subscribed = self._subscriptions.list_subscribed_repository_ids(chat_id)
            repositories = [r for r in self._repositories.list_repositories() if r.id in subscribed]

        listings = []
        for repository in repositories:
            cached = self._cache.get_cached_tag(repository.id)
            listings.append(TrackedListing(repository, cached.tag if cached else None))
        return listings

    def _delete(self, repository: TrackedRepository) -> None:
        self._repositories.delete_repository(repository.id)
        self._reconciler.locks.discard(repository.id)

    def _is_tracking(self, repository: TrackedRepository, chat_id: int) -> bool:
        if self._fan_out == "owner":
            return repository.chat_id == chat_id
        return chat_id in self._subscriptions.list_subscriber_ids(repository.id)

    async def _seed(self, repository: TrackedRepository) -> None:
        try:
            tag = await self._reconciler.seed(repository)
        except Exception:
            # Seeding is an optimisation; the next poll seeds it instead.
            LOGGER.exception("Failed to seed latest tag for %s", repository.url)
            return
        if tag:
            LOGGER.info("Seeded %s with %s", repository.url, tag)
