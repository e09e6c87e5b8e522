"""Fan-out resolvers.

The reconciler only asks "who should hear about this repository"; whether
the answer is the owning chat or every subscriber is decided here.
"""

from __future__ import annotations

from typing import Set

from core.models import TrackedRepository
from core.ports import DestinationResolver, SubscriptionStore


class OwnerDestinations:
    """Notify only the chat that owns the tracked repository."""

    def destinations_for(self, repository: TrackedRepository) -> Set[int]:
        return {repository.chat_id}


class SubscriberDestinations:
    """Notify every chat subscribed to the tracked repository."""

    def __init__(self, subscriptions: SubscriptionStore) -> None:
        self._subscriptions = subscriptions

    def destinations_for(self, repository: TrackedRepository) -> Set[int]:
        return set(self._subscriptions.list_subscriber_ids(repository.id))


def build_destination_resolver(fan_out: str, subscriptions: SubscriptionStore) -> DestinationResolver:
    """Return the resolver for the configured fan-out mode."""

    if fan_out == "owner":
        return OwnerDestinations()
    if fan_out == "subscribers":
        return SubscriberDestinations(subscriptions)
    raise ValueError(f"Unsupported fan-out mode: {fan_out}")
