"""
Cache Keys and Tags
===================

Identity of cached reads (QueryKey), the coarse invalidation labels they carry
(Tag), and per-query declarations validated at definition time.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

# Namespaces become part of persisted keys; keep them simple identifiers
VALID_NAMESPACE_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]{0,63}$")


class Tag(str, Enum):
    """Invalidation labels shared by queries and mutations."""

    BOOK = "book"
    USER = "user"
    CHAT = "chat"


def coerce_tags(tags: Iterable[Tag | str], *, owner: str) -> frozenset[Tag]:
    """
    Convert declared tags into a non-empty frozenset of Tag members.

    Raises:
        ValueError: If no tag is declared or a tag is not a known label
    """
    result: set[Tag] = set()
    for raw in tags:
        try:
            result.add(Tag(raw))
        except ValueError:
            raise ValueError(f"{owner} declares unknown tag {raw!r}") from None
    if not result:
        raise ValueError(f"{owner} must declare at least one tag")
    return frozenset(result)


@dataclass(frozen=True, slots=True)
class QueryKey:
    """
    Identity of a cached read.

    Either a collection-wide read (``QueryKey("allUsers")``) or a single
    entity read (``QueryKey("singleUsers", "7")``).
    """

    namespace: str
    entity_id: str | None = None

    def __post_init__(self) -> None:
        if not VALID_NAMESPACE_PATTERN.match(self.namespace):
            raise ValueError(f"Invalid query namespace: {self.namespace!r}")
        if self.entity_id is not None and not self.entity_id:
            raise ValueError("entity_id cannot be empty")

    @property
    def storage_key(self) -> str:
        """Key under which the snapshot is persisted."""
        if self.entity_id is None:
            return self.namespace
        return f"{self.namespace}:{self.entity_id}"

    def __str__(self) -> str:
        return self.storage_key


@dataclass(frozen=True, slots=True)
class QueryDefinition:
    """Static declaration of a cached query: its key namespace and tags."""

    name: str
    namespace: str
    tags: frozenset[Tag] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not VALID_NAMESPACE_PATTERN.match(self.namespace):
            raise ValueError(f"Query {self.name} has invalid namespace {self.namespace!r}")
        object.__setattr__(self, "tags", coerce_tags(self.tags, owner=f"Query {self.name}"))

    def key(self, entity_id: str | None = None) -> QueryKey:
        """Build the QueryKey for one invocation of this query."""
        return QueryKey(self.namespace, entity_id)


__all__ = [
    "Tag",
    "QueryKey",
    "QueryDefinition",
    "coerce_tags",
]
