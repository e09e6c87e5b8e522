from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from adapters.sqlite_storage import SQLiteStorage
from core.config import PollerConfig
from core.destinations import build_destination_resolver
from core.errors import InvalidRepositoryUrl, RegistrationError
from core.models import LookupOutcome, TagFound
from core.reconciler import ReleaseReconciler
from core.registration import ALREADY_TRACKING, CREATED, UPDATED, RegistrationService

URL = "https://github.com/owner/repo"
T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self) -> None:
        self.now = T0

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


class FakeLookup:
    def __init__(self, outcome: LookupOutcome) -> None:
        self.outcome = outcome
        self.calls = 0

    async def lookup(self, owner: str, repo: str) -> LookupOutcome:
        self.calls += 1
        return self.outcome


class BrokenLookup:
    async def lookup(self, owner: str, repo: str) -> LookupOutcome:
        raise RuntimeError("network down")


class FakeNotifier:
    def __init__(self) -> None:
        self.sent = []

    async def send(self, chat_id, notice) -> None:
        self.sent.append((chat_id, notice))


def _service(tmp_path, fan_out: str = "owner", lookup=None):
    storage = SQLiteStorage(str(tmp_path / "tagwatch.db"))
    storage.init_db()
    clock = FakeClock()
    reconciler = ReleaseReconciler(
        repositories=storage,
        cache=storage,
        lookup=lookup or FakeLookup(TagFound("v1.0.0")),
        notifier=FakeNotifier(),
        destinations=build_destination_resolver(fan_out, storage),
        config=PollerConfig(),
        clock=clock,
    )
    service = RegistrationService(
        repositories=storage,
        subscriptions=storage,
        cache=storage,
        reconciler=reconciler,
        fan_out=fan_out,
        clock=clock,
    )
    return service, storage


def test_track_creates_repository_and_seeds_tag(tmp_path) -> None:
    service, storage = _service(tmp_path)

    result = asyncio.run(service.track(100, "My Repo", URL))

    assert result.status == CREATED
    assert result.message == f"Now tracking My Repo ({URL})."
    stored = storage.get_repository_by_url(URL)
    assert stored.chat_id == 100
    assert stored.name == "My Repo"
    assert storage.get_cached_tag(stored.id).tag == "v1.0.0"
    assert storage.list_subscriber_ids(stored.id) == {100}


def test_track_strips_url_whitespace(tmp_path) -> None:
    service, storage = _service(tmp_path)

    asyncio.run(service.track(100, "repo", f"  {URL}  "))

    assert storage.get_repository_by_url(URL) is not None


def test_track_same_chat_twice_is_already_tracking(tmp_path) -> None:
    service, storage = _service(tmp_path)
    asyncio.run(service.track(100, "repo", URL))

    result = asyncio.run(service.track(100, "repo", URL))

    assert result.status == ALREADY_TRACKING
    assert result.message == f"This chat is already tracking repo ({URL})."
    assert len(storage.list_repositories()) == 1


def test_track_from_other_chat_moves_ownership(tmp_path) -> None:
    service, storage = _service(tmp_path)
    created = asyncio.run(service.track(100, "repo", URL)).repository

    result = asyncio.run(service.track(200, "renamed", URL))

    assert result.status == UPDATED
    assert result.message == f"Updated tracking for renamed ({URL})."
    stored = storage.get_repository(created.id)
    assert stored.chat_id == 200
    assert stored.name == "renamed"
    assert stored.created_at == created.created_at
    assert stored.updated_at > created.updated_at
    assert len(storage.list_repositories()) == 1


def test_subscribers_mode_adds_a_subscriber(tmp_path) -> None:
    service, storage = _service(tmp_path, fan_out="subscribers")
    created = asyncio.run(service.track(100, "repo", URL)).repository

    result = asyncio.run(service.track(200, "repo", URL))

    assert result.status == UPDATED
    assert storage.get_repository(created.id).chat_id == 100
    assert storage.list_subscriber_ids(created.id) == {100, 200}
    assert asyncio.run(service.track(200, "repo", URL)).status == ALREADY_TRACKING


def test_track_requires_name(tmp_path) -> None:
    service, storage = _service(tmp_path)

    with pytest.raises(RegistrationError, match="Please provide a name for the repository."):
        asyncio.run(service.track(100, "  ", URL))
    assert storage.list_repositories() == []


def test_track_rejects_non_github_url(tmp_path) -> None:
    service, storage = _service(tmp_path)

    with pytest.raises(InvalidRepositoryUrl, match="Invalid GitHub repository URL: https://gitlab.com/o/r"):
        asyncio.run(service.track(100, "repo", "https://gitlab.com/o/r"))
    assert storage.list_repositories() == []


def test_track_survives_seed_failure(tmp_path) -> None:
    service, storage = _service(tmp_path, lookup=BrokenLookup())

    result = asyncio.run(service.track(100, "repo", URL))

    assert result.status == CREATED
    assert storage.get_cached_tag(result.repository.id) is None


def test_untrack_in_owner_mode_deletes_repository(tmp_path) -> None:
    service, storage = _service(tmp_path)
    asyncio.run(service.track(100, "repo", URL))

    message = service.untrack(100, URL)

    assert message == f"Stopped tracking repo ({URL})."
    assert storage.get_repository_by_url(URL) is None


def test_untrack_by_other_chat_is_rejected(tmp_path) -> None:
    service, storage = _service(tmp_path)
    asyncio.run(service.track(100, "repo", URL))

    with pytest.raises(RegistrationError, match="This chat is not tracking"):
        service.untrack(200, URL)
    assert storage.get_repository_by_url(URL) is not None


def test_untrack_in_subscribers_mode_keeps_repository_until_last_subscriber(tmp_path) -> None:
    service, storage = _service(tmp_path, fan_out="subscribers")
    asyncio.run(service.track(100, "repo", URL))
    asyncio.run(service.track(200, "repo", URL))

    service.untrack(100, URL)
    repository = storage.get_repository_by_url(URL)
    assert repository is not None
    assert storage.list_subscriber_ids(repository.id) == {200}

    service.untrack(200, URL)
    assert storage.get_repository_by_url(URL) is None


def test_list_for_chat_reports_cached_tags(tmp_path) -> None:
    service, _ = _service(tmp_path)
    asyncio.run(service.track(100, "repo", URL))
    asyncio.run(service.track(300, "other", "https://github.com/owner/other"))

    listings = service.list_for_chat(100)

    assert [listing.repository.url for listing in listings] == [URL]
    assert listings[0].latest_tag == "v1.0.0"
    assert service.list_for_chat(999) == []


def test_list_for_chat_in_subscribers_mode(tmp_path) -> None:
    service, _ = _service(tmp_path, fan_out="subscribers")
    asyncio.run(service.track(100, "repo", URL))
    asyncio.run(service.track(200, "repo", URL))

    assert [listing.repository.url for listing in service.list_for_chat(200)] == [URL]


def test_url_variants_share_one_record(tmp_path) -> None:
    service, storage = _service(tmp_path)

    statuses = [
        asyncio.run(service.track(1, "repo", url)).status
        for url in (
            URL,
            f"{URL}.git",
            f"{URL}/",
            f"{URL}/tree/main",
        )
    ]

    assert statuses == [CREATED, ALREADY_TRACKING, ALREADY_TRACKING, ALREADY_TRACKING]
    assert [r.url for r in storage.list_repositories()] == [URL]


def test_untrack_accepts_url_variant(tmp_path) -> None:
    service, storage = _service(tmp_path)
    asyncio.run(service.track(1, "repo", f"{URL}.git"))

    assert service.untrack(1, f"{URL}/") == f"Stopped tracking repo ({URL})."
    assert storage.list_repositories() == []


@pytest.mark.parametrize("fan_out", ["owner", "subscribers"])
def test_untrack_drops_repository_lock(tmp_path, fan_out) -> None:
    storage = SQLiteStorage(str(tmp_path / "tagwatch.db"))
    storage.init_db()
    reconciler = ReleaseReconciler(
        repositories=storage,
        cache=storage,
        lookup=FakeLookup(TagFound("v1.0.0")),
        notifier=FakeNotifier(),
        destinations=build_destination_resolver(fan_out, storage),
        config=PollerConfig(),
    )
    service = RegistrationService(storage, storage, storage, reconciler, fan_out=fan_out)
    repository = asyncio.run(service.track(1, "repo", URL)).repository
    assert repository.id in reconciler.locks

    service.untrack(1, URL)

    assert repository.id not in reconciler.locks
