"""
Tests for the bidirectional tag registry.
"""

import asyncio

import pytest

from folio.caching.keys import QueryKey, Tag
from folio.caching.tag_registry import TagRegistry

ALL_USERS = QueryKey("allUsers")
USER_1 = QueryKey("singleUsers", "u1")
PROFILE_1 = QueryKey("MyProfile", "u1")


class TestTagRegistry:
    """Tests for TagRegistry."""

    @pytest.mark.asyncio
    async def test_associate_and_lookup(self):
        registry = TagRegistry()
        await registry.associate(ALL_USERS, [Tag.USER])
        await registry.associate(USER_1, [Tag.USER, Tag.BOOK])

        assert await registry.keys_for_tag(Tag.USER) == frozenset({ALL_USERS, USER_1})
        assert await registry.keys_for_tag(Tag.BOOK) == frozenset({USER_1})
        assert await registry.tags_for_key(USER_1) == frozenset({Tag.USER, Tag.BOOK})
        assert len(registry) == 2

    @pytest.mark.asyncio
    async def test_associate_replaces_previous_tags(self):
        """Re-registering a key moves it between tag sets."""
        registry = TagRegistry()
        await registry.associate(USER_1, [Tag.BOOK])
        await registry.associate(USER_1, [Tag.USER])

        assert await registry.keys_for_tag(Tag.BOOK) == frozenset()
        assert await registry.keys_for_tag(Tag.USER) == frozenset({USER_1})

    @pytest.mark.asyncio
    async def test_associate_is_idempotent(self):
        registry = TagRegistry()
        await registry.associate(USER_1, [Tag.USER])
        await registry.associate(USER_1, [Tag.USER])

        assert len(registry) == 1
        assert await registry.keys_for_tag(Tag.USER) == frozenset({USER_1})

    @pytest.mark.asyncio
    async def test_remove(self):
        registry = TagRegistry()
        await registry.associate(USER_1, [Tag.USER, Tag.BOOK])

        assert await registry.remove(USER_1) is True
        assert await registry.remove(USER_1) is False
        assert await registry.keys_for_tag(Tag.USER) == frozenset()
        assert await registry.tags_for_key(USER_1) == frozenset()
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_drain_removes_every_direction(self):
        """Draining a tag deregisters its keys from their other tags too."""
        registry = TagRegistry()
        await registry.associate(USER_1, [Tag.USER, Tag.BOOK])
        await registry.associate(PROFILE_1, [Tag.USER])
        await registry.associate(QueryKey("chat", "b1"), [Tag.CHAT])

        drained = await registry.drain(iter([Tag.BOOK]))

        assert drained == frozenset({USER_1})
        assert await registry.keys_for_tag(Tag.USER) == frozenset({PROFILE_1})
        assert await registry.tags_for_key(USER_1) == frozenset()
        assert len(registry) == 2

    @pytest.mark.asyncio
    async def test_drain_unknown_tag_is_empty(self):
        registry = TagRegistry()
        assert await registry.drain([Tag.CHAT]) == frozenset()

    @pytest.mark.asyncio
    async def test_concurrent_associations_stay_consistent(self):
        registry = TagRegistry()
        keys = [QueryKey("singleUsers", str(i)) for i in range(50)]

        await asyncio.gather(*(registry.associate(k, [Tag.USER]) for k in keys))

        assert await registry.keys_for_tag(Tag.USER) == frozenset(keys)
        for key in keys:
            assert await registry.tags_for_key(key) == frozenset({Tag.USER})

    @pytest.mark.asyncio
    async def test_clear(self):
        registry = TagRegistry()
        await registry.associate(USER_1, [Tag.USER])
        await registry.clear()

        assert len(registry) == 0
        assert await registry.keys_for_tag(Tag.USER) == frozenset()
