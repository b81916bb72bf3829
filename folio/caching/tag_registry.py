"""
Tag Registry
============

Bidirectional mapping between cache keys and the invalidation tags they
depend on. Both directions are kept consistent under a single coarse lock;
the registry is small and lookups are cheap.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Iterable

import structlog

from folio.caching.keys import QueryKey, Tag

logger = structlog.get_logger(__name__)


class TagRegistry:
    """
    Tracks which cached reads must be invalidated when a tag goes stale.

    ``tag -> keys`` drives invalidation, ``key -> tags`` allows replacing or
    removing a key's registration without scanning every tag.
    """

    def __init__(self) -> None:
        self._keys_by_tag: dict[Tag, set[QueryKey]] = defaultdict(set)
        self._tags_by_key: dict[QueryKey, frozenset[Tag]] = {}
        self._lock = asyncio.Lock()

    async def associate(self, key: QueryKey, tags: Iterable[Tag]) -> None:
        """Register ``key`` under ``tags``, replacing any previous tag set."""
        new_tags = frozenset(tags)
        async with self._lock:
            self._detach(key)
            if not new_tags:
                return
            self._tags_by_key[key] = new_tags
            for tag in new_tags:
                self._keys_by_tag[tag].add(key)

    async def keys_for_tag(self, tag: Tag) -> frozenset[QueryKey]:
        """Snapshot of the keys currently registered under ``tag``."""
        async with self._lock:
            return frozenset(self._keys_by_tag.get(tag, ()))

    async def tags_for_key(self, key: QueryKey) -> frozenset[Tag]:
        async with self._lock:
            return self._tags_by_key.get(key, frozenset())

    async def remove(self, key: QueryKey) -> bool:
        """Deregister ``key`` from all of its tags. Returns True if it was registered."""
        async with self._lock:
            return self._detach(key)

    async def drain(self, tags: Iterable[Tag]) -> frozenset[QueryKey]:
        """
        Atomically collect and deregister every key under any of ``tags``.

        Used by invalidation so a concurrent read cannot register a key into
        a tag set while that set is being drained.
        """
        wanted = frozenset(tags)
        async with self._lock:
            drained: set[QueryKey] = set()
            for tag in wanted:
                drained.update(self._keys_by_tag.get(tag, ()))
            for key in drained:
                self._detach(key)

        logger.debug(
            "tags_drained",
            tags=sorted(t.value for t in wanted),
            keys=len(drained),
        )
        return frozenset(drained)

    async def clear(self) -> None:
        async with self._lock:
            self._keys_by_tag.clear()
            self._tags_by_key.clear()

    def __len__(self) -> int:
        return len(self._tags_by_key)

    def _detach(self, key: QueryKey) -> bool:
        """Remove ``key`` from both directions. Caller holds the lock."""
        old_tags = self._tags_by_key.pop(key, None)
        if old_tags is None:
            return False
        for tag in old_tags:
            keys = self._keys_by_tag.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._keys_by_tag[tag]
        return True


__all__ = ["TagRegistry"]
