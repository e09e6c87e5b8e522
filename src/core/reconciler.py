"""Release reconciliation loop.

This module is integration-agnostic. It only relies on ports for storage,
lookups, and notifications. One pass enforces a strict order per repository:
1) Decompose the repository URL into (owner, repo)
2) Look up the latest published tag
3) Compare against the cached tag and write the cache on change
4) Notify every destination, but only when a previously cached tag changed

Cache writes always happen before notifications so a crash can never leave
a notified change unpersisted.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from core.config import PollerConfig
from core.models import (
    CycleReport,
    LookupFailed,
    NoTag,
    ReleaseNotice,
    TagFound,
    TrackedRepository,
)
from core.ports import (
    DestinationResolver,
    NotifierPort,
    TagCacheStore,
    TrackedRepositoryStore,
    VersionLookupPort,
)
from core.repository_urls import owner_and_repo, release_page_url

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyedLocks:
    """One asyncio.Lock per repository id, shared by every cache writer."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def for_key(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def discard(self, key: str) -> None:
        """Forget the lock for a deleted repository; current holders keep theirs."""

        self._locks.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._locks


class ReleaseReconciler:
    """Orchestrates lookups, tag cache transitions, and fan-out."""

    def __init__(
        self,
        repositories: TrackedRepositoryStore,
        cache: TagCacheStore,
        lookup: VersionLookupPort,
        notifier: NotifierPort,
        destinations: DestinationResolver,
        config: PollerConfig,
        clock: Optional[Callable[[], datetime]] = None,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        self._repositories = repositories
        self._cache = cache
        self._lookup = lookup
        self._notifier = notifier
        self._destinations = destinations
        self._config = config
        self._clock = clock or _utcnow
        self._locks = locks or KeyedLocks()

    @property
    def locks(self) -> KeyedLocks:
        return self._locks

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Poll, wait for the interval, repeat until ``stop_event`` is set."""

        stop_event = stop_event or asyncio.Event()
        LOGGER.info("Starting release poller (interval=%ss)", self._config.interval_secs)
        while not stop_event.is_set():
            await self.poll_once()
            try:
                # Waiting on the event instead of sleeping lets shutdown cut the
                # interval short.
                await asyncio.wait_for(stop_event.wait(), timeout=self._config.interval_secs)
            except asyncio.TimeoutError:
                continue
        LOGGER.info("Release poller stopped")

    async def poll_once(self) -> CycleReport:
        """Run one reconciliation pass over every tracked repository."""

        LOGGER.info("Polling for new releases")
        report = CycleReport()
        try:
            repositories = self._repositories.list_repositories()
        except Exception:
            LOGGER.exception("Poller failed to list repositories")
            return report

        semaphore = asyncio.Semaphore(max(1, self._config.max_concurrency))

        async def _guarded(repository: TrackedRepository) -> None:
            async with semaphore:
                try:
                    await self.reconcile(repository, report)
                except Exception:
                    # One repository's failure must never abort the cycle.
                    report.failed += 1
                    LOGGER.exception("Unexpected error while reconciling %s", repository.url)

        await asyncio.gather(*(_guarded(repository) for repository in repositories))

        LOGGER.info(
            "Poll complete: checked=%s, seeded=%s, changed=%s, unchanged=%s, "
            "no_tag=%s, failed=%s, skipped=%s, sent=%s, delivery_failures=%s",
            report.checked,
            report.seeded,
            report.changed,
            report.unchanged,
            report.no_tag,
            report.failed,
            report.skipped,
            report.notifications_sent,
            report.delivery_failures,
        )
        return report

    async def reconcile(self, repository: TrackedRepository, report: Optional[CycleReport] = None) -> None:
        """Process one repository through lookup, cache compare, and fan-out."""

        if report is None:
            report = CycleReport()
        report.checked += 1

        parts = owner_and_repo(repository.url)
        if parts is None:
            LOGGER.warning("Skipping %s: cannot decompose URL %s", repository.name, repository.url)
            report.skipped += 1
            return
        owner, repo = parts

        outcome = await self._lookup.lookup(owner, repo)
        if isinstance(outcome, LookupFailed):
            LOGGER.warning("Poller failed to fetch latest release for %s: %s", repository.url, outcome.detail)
            report.failed += 1
            return
        if isinstance(outcome, NoTag):
            LOGGER.info("No release for %s/%s", owner, repo)
            report.no_tag += 1
            return

        tag = outcome.tag
        async with self._locks.for_key(repository.id):
            cached = self._cache.get_cached_tag(repository.id)
            # Re-observing the cached tag is the common case; skip the write so
            # first_seen_at keeps meaning "when did it last change".
            if cached is not None and cached.tag == tag:
                report.unchanged += 1
                return
            previous = self._cache.upsert_cached_tag(repository.id, tag, self._clock())

        if previous is None:
            # First observation only seeds the cache.
            LOGGER.info("Seeded %s/%s with %s", owner, repo, tag)
            report.seeded += 1
            return
        if previous == tag:
            report.unchanged += 1
            return

        report.changed += 1
        LOGGER.info("New release for %s/%s: %s -> %s", owner, repo, previous, tag)
        notice = ReleaseNotice(
            repository_name=repository.name,
            repository_url=repository.url,
            tag=tag,
            release_url=release_page_url(owner, repo, tag),
        )
        await self._fan_out(repository, notice, report)

    async def seed(self, repository: TrackedRepository) -> Optional[str]:
        """Store the current tag without notifying; return it if one exists."""

        parts = owner_and_repo(repository.url)
        if parts is None:
            return None
        outcome = await self._lookup.lookup(*parts)
        if not isinstance(outcome, TagFound):
            return None
        async with self._locks.for_key(repository.id):
            self._cache.upsert_cached_tag(repository.id, outcome.tag, self._clock())
        return outcome.tag

    async def _fan_out(self, repository: TrackedRepository, notice: ReleaseNotice, report: CycleReport) -> None:
        destinations = self._destinations.destinations_for(repository)
        if not destinations:
            LOGGER.info("No destinations for %s, nothing to send", repository.url)
            return

        for chat_id in sorted(destinations):
            LOGGER.debug("Sending notification for %s to %s", repository.url, chat_id)
            try:
                await self._notifier.send(chat_id, notice)
            except Exception:
                # Delivery is best effort: the cache write stands and the
                # remaining chats still get their message.
                report.delivery_failures += 1
                LOGGER.exception("Failed to notify chat %s about %s %s", chat_id, repository.url, notice.tag)
                continue
            report.notifications_sent += 1
