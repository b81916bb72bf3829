"""
Query Cache Core
================

Offline-aware read-through cache.

Every read checks connectivity once:
- offline with a snapshot: serve the snapshot verbatim, flagged stale
- offline without a snapshot: raise OfflineNoDataError
- online: fetch from the remote source, persist, register tags, return fresh

Concurrent online reads for one key share a single fetch task. Each fetch is
stamped with a logical timestamp when it starts; a result is committed only if
no fresher data or invalidation has been recorded for its key in the meantime.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import partial
from typing import Any

import structlog

from folio.caching.connectivity import ConnectivityOracle
from folio.caching.errors import OfflineNoDataError, RemoteError, SnapshotStoreError
from folio.caching.keys import QueryKey, Tag, coerce_tags
from folio.caching.snapshot_store import SnapshotStore
from folio.caching.tag_registry import TagRegistry

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

Fetcher = Callable[[], Awaitable[Any]]


class LogicalClock:
    """
    Strictly increasing timestamps seeded by the wall clock.

    Seeding with nanoseconds since the epoch keeps stamps ordered across
    restarts against snapshots persisted by a previous process. Stamps read
    back from the store are fed to ``observe`` so a wall clock that is behind
    an earlier session cannot keep new stamps below persisted ones.
    """

    def __init__(self, time_source: Callable[[], int] = time.time_ns) -> None:
        self._time_source = time_source
        self._last = 0

    def tick(self) -> int:
        self._last = max(self._time_source(), self._last + 1)
        return self._last

    def observe(self, stamp: int) -> None:
        """Advance past ``stamp`` so the next tick outranks it."""
        if stamp > self._last:
            self._last = stamp

    @property
    def last(self) -> int:
        return self._last


@dataclass(frozen=True)
class CacheEntry:
    """A persisted snapshot of one read together with its tags and stamps."""

    key: QueryKey
    payload: Any
    tags: frozenset[Tag]
    stored_at: int
    invalidated_at: int | None = None

    @property
    def is_invalidated(self) -> bool:
        return self.invalidated_at is not None

    def to_json(self) -> str:
        try:
            return json.dumps(
                {
                    "data": self.payload,
                    "tags": sorted(t.value for t in self.tags),
                    "stored_at": self.stored_at,
                    "invalidated_at": self.invalidated_at,
                }
            )
        except (TypeError, ValueError) as e:
            raise SnapshotStoreError(f"Payload for {self.key} is not serializable: {e}") from e

    @classmethod
    def from_json(cls, key: QueryKey, raw: str) -> CacheEntry:
        """
        Parse a persisted envelope.

        Raises:
            ValueError: If the envelope is malformed
        """
        try:
            envelope = json.loads(raw)
            tags = frozenset(Tag(t) for t in envelope["tags"])
            stored_at = int(envelope["stored_at"])
            invalidated_at = envelope.get("invalidated_at")
            return cls(
                key=key,
                payload=envelope["data"],
                tags=tags,
                stored_at=stored_at,
                invalidated_at=int(invalidated_at) if invalidated_at is not None else None,
            )
        except (KeyError, TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed snapshot for {key}: {e}") from e


class ReadSource(str, Enum):
    REMOTE = "remote"
    SNAPSHOT = "snapshot"


@dataclass(frozen=True)
class ReadResult:
    """
    Outcome of a successful read.

    ``stale`` is True when the value came from the local snapshot because the
    device is offline. ``persisted`` is False when a fresh value could not be
    committed (store failure or a fresher commit won).
    """

    key: QueryKey
    value: Any
    source: ReadSource
    stale: bool
    stored_at: int
    invalidated: bool = False
    persisted: bool = True


@dataclass
class CacheStats:
    """Counters for cache behaviour."""

    remote_fetches: int = 0
    remote_failures: int = 0
    snapshot_hits: int = 0
    offline_misses: int = 0
    coalesced_reads: int = 0
    invalidations: int = 0
    discarded_fetches: int = 0
    store_errors: int = 0

    @property
    def hit_rate(self) -> float:
        """Share of offline reads that could be answered from a snapshot."""
        total = self.snapshot_hits + self.offline_misses
        return self.snapshot_hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "remote_fetches": self.remote_fetches,
            "remote_failures": self.remote_failures,
            "snapshot_hits": self.snapshot_hits,
            "offline_misses": self.offline_misses,
            "coalesced_reads": self.coalesced_reads,
            "invalidations": self.invalidations,
            "discarded_fetches": self.discarded_fetches,
            "store_errors": self.store_errors,
            "hit_rate": round(self.hit_rate, 4),
        }


@dataclass
class _InFlight:
    task: asyncio.Task[ReadResult]
    tags: frozenset[Tag]
    stamp: int
    waiters: int = field(default=1)


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class QueryCache:
    """
    Read-through cache over a snapshot store, a connectivity oracle and a
    tag registry.

    The cache does not own its collaborators; whoever constructs it opens and
    closes the snapshot store.
    """

    def __init__(
        self,
        store: SnapshotStore,
        oracle: ConnectivityOracle,
        registry: TagRegistry | None = None,
        clock: LogicalClock | None = None,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._registry = registry if registry is not None else TagRegistry()
        self._clock = clock if clock is not None else LogicalClock()
        self._stats = CacheStats()

        self._inflight: dict[QueryKey, _InFlight] = {}
        # Lock entries live only while someone holds or waits on them
        self._key_locks: dict[QueryKey, _KeyLock] = {}
        # Fetches still running per key, detached ones included
        self._running: defaultdict[QueryKey, int] = defaultdict(int)
        # Highest invalidation stamp per key, kept only while a fetch for the
        # key is running; later fetches are stamped above it anyway
        self._invalidation_marks: dict[QueryKey, int] = {}

    @property
    def registry(self) -> TagRegistry:
        return self._registry

    @property
    def clock(self) -> LogicalClock:
        return self._clock

    @asynccontextmanager
    async def _locked(self, key: QueryKey) -> AsyncIterator[None]:
        entry = self._key_locks.get(key)
        if entry is None:
            entry = self._key_locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._key_locks[key]

    # ───────────────────────────────────────────────────────────────────────
    # Reads
    # ───────────────────────────────────────────────────────────────────────

    async def read(
        self,
        key: QueryKey,
        fetch: Fetcher,
        tags: Iterable[Tag | str],
    ) -> ReadResult:
        """
        Read ``key`` through the cache.

        Args:
            key: Identity of the read
            fetch: Zero-argument coroutine function performing the remote read
            tags: Invalidation tags for the cached result (at least one)

        Returns:
            ReadResult with either fresh or stale data

        Raises:
            OfflineNoDataError: Offline and nothing cached for ``key``
            RemoteError: Online and the remote fetch failed
        """
        tag_set = coerce_tags(tags, owner=f"Read {key}")

        if not await self._check_online():
            return await self._serve_snapshot(key)

        return await self._fetch_shared(key, fetch, tag_set)

    async def peek(self, key: QueryKey) -> CacheEntry | None:
        """Return the persisted entry for ``key`` without any remote I/O."""
        return await self._load(key)

    async def _check_online(self) -> bool:
        try:
            return bool(await self._oracle.is_online())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("connectivity_check_failed", error=str(e), assumed="offline")
            return False

    async def _serve_snapshot(self, key: QueryKey) -> ReadResult:
        entry = await self._load(key)
        if entry is None:
            self._stats.offline_misses += 1
            logger.info("offline_no_data", key=key.storage_key)
            raise OfflineNoDataError(key)

        self._stats.snapshot_hits += 1
        logger.debug(
            "snapshot_served",
            key=key.storage_key,
            invalidated=entry.is_invalidated,
        )
        return ReadResult(
            key=key,
            value=entry.payload,
            source=ReadSource.SNAPSHOT,
            stale=True,
            stored_at=entry.stored_at,
            invalidated=entry.is_invalidated,
            persisted=True,
        )

    async def _fetch_shared(
        self,
        key: QueryKey,
        fetch: Fetcher,
        tags: frozenset[Tag],
    ) -> ReadResult:
        inflight = self._inflight.get(key)
        if inflight is not None:
            inflight.waiters += 1
            self._stats.coalesced_reads += 1
            logger.debug("fetch_coalesced", key=key.storage_key, waiters=inflight.waiters)
        else:
            stamp = self._clock.tick()
            task = asyncio.create_task(
                self._run_fetch(key, fetch, tags, stamp),
                name=f"folio-fetch:{key.storage_key}",
            )
            inflight = _InFlight(task=task, tags=tags, stamp=stamp)
            self._inflight[key] = inflight
            self._running[key] += 1
            task.add_done_callback(partial(self._on_fetch_done, key, inflight))

        # Shielded so a caller that goes away does not cancel the shared fetch
        return await asyncio.shield(inflight.task)

    def _on_fetch_done(self, key: QueryKey, inflight: _InFlight, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is inflight:
            del self._inflight[key]
        self._running[key] -= 1
        if self._running[key] <= 0:
            del self._running[key]
            self._invalidation_marks.pop(key, None)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            # Retrieved here so abandoned fetches do not leak unobserved errors
            logger.debug("fetch_task_finished_with_error", key=key.storage_key, error=str(error))

    async def _run_fetch(
        self,
        key: QueryKey,
        fetch: Fetcher,
        tags: frozenset[Tag],
        stamp: int,
    ) -> ReadResult:
        self._stats.remote_fetches += 1
        try:
            value = await fetch()
        except RemoteError as e:
            self._stats.remote_failures += 1
            logger.warning("remote_fetch_failed", key=key.storage_key, error=str(e))
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._stats.remote_failures += 1
            logger.warning(
                "remote_fetch_failed",
                key=key.storage_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RemoteError(f"Fetch for {key} failed: {e}", cause=e) from e

        persisted = await self._commit(key, value, tags, stamp)
        return ReadResult(
            key=key,
            value=value,
            source=ReadSource.REMOTE,
            stale=False,
            stored_at=stamp,
            invalidated=False,
            persisted=persisted,
        )

    async def _commit(
        self,
        key: QueryKey,
        value: Any,
        tags: frozenset[Tag],
        stamp: int,
    ) -> bool:
        """Persist and register a fetch result if nothing fresher is recorded."""
        async with self._locked(key):
            current = await self._load(key)
            floor = self._invalidation_marks.get(key, 0)
            if current is not None:
                floor = max(floor, current.stored_at, current.invalidated_at or 0)

            if stamp < floor:
                self._stats.discarded_fetches += 1
                logger.info(
                    "fetch_result_discarded",
                    key=key.storage_key,
                    stamp=stamp,
                    floor=floor,
                )
                return False

            entry = CacheEntry(key=key, payload=value, tags=tags, stored_at=stamp)
            try:
                await self._store.put(key.storage_key, entry.to_json())
            except SnapshotStoreError as e:
                self._stats.store_errors += 1
                logger.warning("snapshot_put_failed", key=key.storage_key, error=str(e))
                return False

            # Registered only after a successful put so the registry never
            # points at a key the store cannot resolve
            await self._registry.associate(key, tags)

        logger.debug("snapshot_committed", key=key.storage_key, stamp=stamp)
        return True

    async def _load(self, key: QueryKey) -> CacheEntry | None:
        try:
            raw = await self._store.get(key.storage_key)
        except SnapshotStoreError as e:
            self._stats.store_errors += 1
            logger.warning("snapshot_get_failed", key=key.storage_key, error=str(e))
            return None
        if raw is None:
            return None
        try:
            entry = CacheEntry.from_json(key, raw)
        except ValueError as e:
            self._stats.store_errors += 1
            logger.warning("snapshot_corrupt", key=key.storage_key, error=str(e))
            return None
        self._clock.observe(max(entry.stored_at, entry.invalidated_at or 0))
        return entry

    # ───────────────────────────────────────────────────────────────────────
    # Invalidation
    # ───────────────────────────────────────────────────────────────────────

    async def invalidate_tags(self, tags: Iterable[Tag | str]) -> frozenset[QueryKey]:
        """
        Invalidate every read registered under any of ``tags``.

        Registered keys are drained from the registry and their snapshots are
        flagged with an invalidation stamp (the payload stays available as an
        offline fallback). In-flight fetches carrying any of the tags are
        detached, so the next read starts a new fetch and the detached result
        cannot be committed. A detached fetch that already passed its commit
        check gets flagged right after its write lands.

        Returns:
            The keys that were invalidated
        """
        wanted = coerce_tags(tags, owner="Invalidation")
        mark = self._clock.tick()

        # Detach in-flight fetches before awaiting anything so their commit
        # sees the mark
        keys: set[QueryKey] = set()
        for key, inflight in list(self._inflight.items()):
            if inflight.tags & wanted:
                del self._inflight[key]
                self._invalidation_marks[key] = mark
                keys.add(key)

        drained = await self._registry.drain(wanted)
        for key in drained:
            if key in self._running:
                self._invalidation_marks[key] = max(self._invalidation_marks.get(key, 0), mark)
        keys.update(drained)

        for key in keys:
            await self._flag_invalidated(key, mark)

        self._stats.invalidations += len(keys)
        logger.info(
            "cache_invalidated",
            tags=sorted(t.value for t in wanted),
            keys=len(keys),
        )
        return frozenset(keys)

    async def _flag_invalidated(self, key: QueryKey, mark: int) -> None:
        async with self._locked(key):
            current = await self._load(key)
            if current is None or current.stored_at > mark:
                return
            if current.invalidated_at is not None and current.invalidated_at >= mark:
                return
            try:
                await self._store.put(
                    key.storage_key, replace(current, invalidated_at=mark).to_json()
                )
            except SnapshotStoreError as e:
                self._stats.store_errors += 1
                logger.warning("snapshot_flag_failed", key=key.storage_key, error=str(e))
            # A commit that landed after the drain registered the key again
            await self._registry.remove(key)

    async def evict(self, key: QueryKey) -> bool:
        """Physically remove the snapshot for ``key`` and deregister it."""
        async with self._locked(key):
            await self._registry.remove(key)
            try:
                return await self._store.delete(key.storage_key)
            except SnapshotStoreError as e:
                self._stats.store_errors += 1
                logger.warning("snapshot_delete_failed", key=key.storage_key, error=str(e))
                return False

    async def clear(self) -> int:
        """Drop every snapshot and registration. Returns the number of snapshots removed."""
        mark = self._clock.tick()
        for key in self._running:
            self._invalidation_marks[key] = mark
        self._inflight.clear()
        await self._registry.clear()
        removed = await self._store.clear()
        logger.info("cache_cleared", removed=removed)
        return removed

    def get_stats(self) -> CacheStats:
        return self._stats

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)


__all__ = [
    "LogicalClock",
    "CacheEntry",
    "ReadSource",
    "ReadResult",
    "CacheStats",
    "QueryCache",
    "Fetcher",
]
