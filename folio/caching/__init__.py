"""
Folio Caching

Offline-aware read-through cache with tag-driven invalidation.
"""

from folio.caching.connectivity import (
    ConnectivityOracle,
    HttpConnectivityProbe,
    StaticConnectivity,
)
from folio.caching.errors import (
    DocumentNotFoundError,
    FolioError,
    OfflineNoDataError,
    PartialMutationError,
    RemoteError,
    SnapshotStoreError,
)
from folio.caching.keys import QueryDefinition, QueryKey, Tag, coerce_tags
from folio.caching.mutations import (
    MutationDescriptor,
    MutationExecutor,
    MutationResult,
    MutationStep,
)
from folio.caching.query_cache import (
    CacheEntry,
    CacheStats,
    LogicalClock,
    QueryCache,
    ReadResult,
    ReadSource,
)
from folio.caching.snapshot_store import (
    MemorySnapshotStore,
    RedisSnapshotStore,
    SnapshotStore,
    SqlSnapshotStore,
    create_snapshot_store,
)
from folio.caching.tag_registry import TagRegistry

__all__ = [
    # Connectivity
    "ConnectivityOracle",
    "StaticConnectivity",
    "HttpConnectivityProbe",
    # Errors
    "FolioError",
    "OfflineNoDataError",
    "RemoteError",
    "DocumentNotFoundError",
    "PartialMutationError",
    "SnapshotStoreError",
    # Keys
    "Tag",
    "QueryKey",
    "QueryDefinition",
    "coerce_tags",
    # Store
    "SnapshotStore",
    "MemorySnapshotStore",
    "SqlSnapshotStore",
    "RedisSnapshotStore",
    "create_snapshot_store",
    # Cache
    "TagRegistry",
    "LogicalClock",
    "CacheEntry",
    "CacheStats",
    "QueryCache",
    "ReadResult",
    "ReadSource",
    # Mutations
    "MutationDescriptor",
    "MutationStep",
    "MutationResult",
    "MutationExecutor",
]
