"""
Persistent Snapshot Store
=========================

Durable local key -> blob storage for query snapshots. Keys are strings,
values are serialized (JSON) snapshots. Reads never touch the network.

Backends:
- MemorySnapshotStore: process-local, for tests and throwaway sessions
- SqlSnapshotStore: SQLAlchemy async, SQLite file by default (survives restarts)
- RedisSnapshotStore: redis.asyncio, for shared development setups
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import DateTime, String, Text, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from folio.caching.errors import SnapshotStoreError

if TYPE_CHECKING:
    from folio.config import Settings

logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Protocol
# ═══════════════════════════════════════════════════════════════════════════════


@runtime_checkable
class SnapshotStore(Protocol):
    """
    Local persisted snapshot storage.

    ``put`` overwrites and raises SnapshotStoreError on I/O failure. There is
    no eviction on the read path: stale snapshots stay readable as the
    offline fallback.
    """

    async def open(self) -> None:
        """Acquire resources. Called once at data layer start."""
        ...

    async def close(self) -> None:
        """Release resources. Called once at data layer shutdown."""
        ...

    async def get(self, key: str) -> str | None:
        """Return the stored value or None when absent."""
        ...

    async def put(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    async def delete(self, key: str) -> bool:
        """Physically remove ``key``. Returns True if it existed."""
        ...

    async def clear(self) -> int:
        """Remove every snapshot. Returns the number removed."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory
# ═══════════════════════════════════════════════════════════════════════════════


class MemorySnapshotStore:
    """In-memory snapshot store. Contents are lost when the process exits."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def clear(self) -> int:
        count = len(self._data)
        self._data.clear()
        return count

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data


# ═══════════════════════════════════════════════════════════════════════════════
# SQL (SQLAlchemy async)
# ═══════════════════════════════════════════════════════════════════════════════


class SnapshotBase(DeclarativeBase):
    pass


class SnapshotRow(SnapshotBase):
    """One persisted query snapshot."""

    __tablename__ = "query_snapshots"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SqlSnapshotStore:
    """
    Snapshot store on a relational database.

    Defaults to a local SQLite file through aiosqlite, which gives the same
    durability the mobile client gets from its on-device key-value storage.
    """

    def __init__(self, url: str, engine: AsyncEngine | None = None) -> None:
        self._url = url
        self._engine = engine
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    async def open(self) -> None:
        if self._sessions is not None:
            return
        try:
            if self._engine is None:
                self._engine = create_async_engine(self._url, echo=False)
            async with self._engine.begin() as conn:
                await conn.run_sync(SnapshotBase.metadata.create_all)
        except SQLAlchemyError as e:
            raise SnapshotStoreError(f"Failed to open snapshot database: {e}") from e
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)
        logger.info("snapshot_store_opened", backend="sql")

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessions = None

    def _session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._sessions is None:
            raise SnapshotStoreError("Snapshot store used before open()")
        return self._sessions

    async def get(self, key: str) -> str | None:
        sessions = self._session_factory()
        try:
            async with sessions() as session:
                row = await session.get(SnapshotRow, key)
                return row.payload if row is not None else None
        except SQLAlchemyError as e:
            raise SnapshotStoreError(f"Failed to read snapshot {key}: {e}") from e

    async def put(self, key: str, value: str) -> None:
        sessions = self._session_factory()
        try:
            async with sessions() as session, session.begin():
                await session.merge(
                    SnapshotRow(key=key, payload=value, updated_at=datetime.now(UTC))
                )
        except SQLAlchemyError as e:
            raise SnapshotStoreError(f"Failed to write snapshot {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        sessions = self._session_factory()
        try:
            async with sessions() as session, session.begin():
                result: Any = await session.execute(
                    delete(SnapshotRow).where(SnapshotRow.key == key)
                )
                return bool(result.rowcount)
        except SQLAlchemyError as e:
            raise SnapshotStoreError(f"Failed to delete snapshot {key}: {e}") from e

    async def clear(self) -> int:
        sessions = self._session_factory()
        try:
            async with sessions() as session, session.begin():
                count = await session.scalar(select(func.count()).select_from(SnapshotRow))
                await session.execute(delete(SnapshotRow))
                return int(count or 0)
        except SQLAlchemyError as e:
            raise SnapshotStoreError(f"Failed to clear snapshots: {e}") from e


# ═══════════════════════════════════════════════════════════════════════════════
# Redis
# ═══════════════════════════════════════════════════════════════════════════════


class RedisSnapshotStore:
    """Snapshot store on Redis. Keys are namespaced with ``prefix``."""

    def __init__(
        self,
        url: str,
        prefix: str = "folio:snapshot:",
        client: Any = None,
    ) -> None:
        self._url = url
        self._prefix = prefix
        self._redis: Any = client

    def _make_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def open(self) -> None:
        if self._redis is None:
            self._redis = aioredis.from_url(self._url, encoding="utf-8", decode_responses=True)
        try:
            await self._redis.ping()
        except (RedisError, ConnectionError, TimeoutError, OSError) as e:
            raise SnapshotStoreError(f"Failed to connect to redis: {e}") from e
        logger.info("snapshot_store_opened", backend="redis")

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
        self._redis = None

    def _client(self) -> Any:
        if self._redis is None:
            raise SnapshotStoreError("Snapshot store used before open()")
        return self._redis

    async def get(self, key: str) -> str | None:
        try:
            data = await self._client().get(self._make_key(key))
        except (RedisError, ConnectionError, TimeoutError, OSError) as e:
            raise SnapshotStoreError(f"Failed to read snapshot {key}: {e}") from e
        if isinstance(data, bytes):
            return data.decode("utf-8")
        return data

    async def put(self, key: str, value: str) -> None:
        try:
            await self._client().set(self._make_key(key), value)
        except (RedisError, ConnectionError, TimeoutError, OSError) as e:
            raise SnapshotStoreError(f"Failed to write snapshot {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            removed: int = await self._client().delete(self._make_key(key))
        except (RedisError, ConnectionError, TimeoutError, OSError) as e:
            raise SnapshotStoreError(f"Failed to delete snapshot {key}: {e}") from e
        return removed > 0

    async def clear(self) -> int:
        client = self._client()
        count = 0
        try:
            async for redis_key in client.scan_iter(f"{self._prefix}*"):
                count += await client.delete(redis_key)
        except (RedisError, ConnectionError, TimeoutError, OSError) as e:
            raise SnapshotStoreError(f"Failed to clear snapshots: {e}") from e
        return count


# ═══════════════════════════════════════════════════════════════════════════════
# Factory
# ═══════════════════════════════════════════════════════════════════════════════


def create_snapshot_store(settings: Settings) -> SnapshotStore:
    """Build the snapshot store selected by ``settings.snapshot_backend``."""
    backend = settings.snapshot_backend
    if backend == "memory":
        return MemorySnapshotStore()
    if backend == "sql":
        return SqlSnapshotStore(settings.snapshot_sql_url)
    if backend == "redis":
        return RedisSnapshotStore(settings.redis_url, prefix=settings.snapshot_key_prefix)
    raise ValueError(f"Unknown snapshot backend: {backend}")


__all__ = [
    "SnapshotStore",
    "MemorySnapshotStore",
    "SqlSnapshotStore",
    "SnapshotRow",
    "RedisSnapshotStore",
    "create_snapshot_store",
]
