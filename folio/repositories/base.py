"""
Repository Base

Shared plumbing for repositories: running a cached read and translating cache
errors into a QueryOutcome plus a user-facing notice.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog

from folio.caching.errors import OfflineNoDataError, RemoteError
from folio.caching.keys import QueryDefinition
from folio.caching.query_cache import QueryCache, ReadSource
from folio.monitoring.logging import log_context
from folio.notifications import Messages, Notice, Notifier, deliver

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    OFFLINE_NO_DATA = "offline_no_data"
    REMOTE_FAILURE = "remote_failure"


@dataclass(frozen=True)
class QueryOutcome(Generic[T]):
    """
    What a repository query hands to the presentation layer.

    ``value`` is always usable: on OFFLINE_NO_DATA and REMOTE_FAILURE it is the
    query's empty default.
    """

    status: OutcomeStatus
    value: T
    stale: bool = False
    source: ReadSource | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS


class CachedRepository:
    """Base class for repositories that read through the query cache."""

    def __init__(self, cache: QueryCache, notifier: Notifier | None = None) -> None:
        self._cache = cache
        self._notifier = notifier

    async def _query(
        self,
        definition: QueryDefinition,
        entity_id: str | None,
        fetch: Callable[[], Awaitable[Any]],
        decode: Callable[[Any], T],
        default: Callable[[], T],
    ) -> QueryOutcome[T]:
        key = definition.key(entity_id)
        with log_context(operation=definition.name, key=key.storage_key):
            try:
                result = await self._cache.read(key, fetch, definition.tags)
            except OfflineNoDataError:
                await deliver(self._notifier, Notice.error(Messages.NO_CONNECTION))
                return QueryOutcome(OutcomeStatus.OFFLINE_NO_DATA, default())
            except RemoteError as e:
                logger.warning("query_failed", error=str(e))
                await deliver(self._notifier, Notice.error(Messages.SOMETHING_WENT_WRONG, e.message))
                return QueryOutcome(OutcomeStatus.REMOTE_FAILURE, default(), error=e.message)

        return QueryOutcome(
            OutcomeStatus.SUCCESS,
            decode(result.value),
            stale=result.stale,
            source=result.source,
        )


__all__ = ["OutcomeStatus", "QueryOutcome", "CachedRepository"]
