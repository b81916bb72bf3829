"""
Folio - Test Fixtures

Shared pytest fixtures for all test modules.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from folio.caching.connectivity import StaticConnectivity
from folio.caching.mutations import MutationExecutor
from folio.caching.query_cache import QueryCache
from folio.caching.snapshot_store import MemorySnapshotStore
from folio.caching.tag_registry import TagRegistry
from folio.datasource.memory import InMemoryDocumentStore
from folio.notifications import CollectingNotifier

os.environ["FOLIO_APP_ENV"] = "testing"
os.environ.setdefault("FOLIO_SNAPSHOT_BACKEND", "memory")


# =============================================================================
# Cache Collaborators
# =============================================================================


@pytest.fixture
def store() -> MemorySnapshotStore:
    return MemorySnapshotStore()


@pytest.fixture
def oracle() -> StaticConnectivity:
    return StaticConnectivity(online=True)


@pytest.fixture
def registry() -> TagRegistry:
    return TagRegistry()


@pytest.fixture
def cache(store, oracle, registry) -> QueryCache:
    return QueryCache(store, oracle, registry)


@pytest.fixture
def notifier() -> CollectingNotifier:
    return CollectingNotifier()


@pytest.fixture
def executor(cache, notifier) -> MutationExecutor:
    return MutationExecutor(cache, notifier)


# =============================================================================
# Remote Source
# =============================================================================


@pytest.fixture
def seed_data() -> dict[str, dict[str, dict[str, Any]]]:
    return {
        "users": {
            "u1": {
                "email": "ada@example.com",
                "favoritesBook": ["b1"],
                "startReadBook": ["b2"],
                "finishedBook": [],
                "revieCount": 2,
            },
            "u2": {"email": "bob@example.com"},
        },
        "books": {
            "b1": {"title": "Dune", "authors": ["Frank Herbert"], "comments": []},
        },
        "userBook": {
            "ub1": {"title": "My Notes", "authors": ["Ada"]},
        },
        "BookChats": {
            "b1": {"message": [], "comments": []},
        },
    }


@pytest.fixture
def remote(seed_data) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(seed=seed_data)


# =============================================================================
# Helpers
# =============================================================================


class CountingFetcher:
    """Fetcher that counts calls and can be held open until released."""

    def __init__(self, value: Any = None, delay: float = 0.0) -> None:
        self.value = value
        self.delay = delay
        self.calls = 0
        self.release = asyncio.Event()
        self.release.set()
        self.error: BaseException | None = None

    def hold(self) -> None:
        self.release.clear()

    async def __call__(self) -> Any:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.value


@pytest.fixture
def make_fetcher() -> Callable[..., CountingFetcher]:
    return CountingFetcher


async def settle(predicate: Callable[[], bool] | None = None, rounds: int = 50) -> None:
    """Yield to the event loop until ``predicate`` holds (or a few rounds pass)."""
    for _ in range(rounds):
        if predicate is not None and predicate():
            return
        await asyncio.sleep(0)


@pytest.fixture
def run_until() -> Callable[..., Awaitable[None]]:
    return settle
