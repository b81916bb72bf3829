"""
Data Layer Errors
=================

Exception taxonomy shared by the cache core, the mutation executor and the
remote/persistence adapters. Serving a stale snapshot is not an error; it is
signalled through ``ReadResult.stale``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from folio.caching.keys import QueryKey


class FolioError(Exception):
    """Base exception for data layer errors."""
    pass


class OfflineNoDataError(FolioError):
    """A read was requested while offline and no snapshot exists for the key."""

    def __init__(self, key: QueryKey) -> None:
        self.key = key
        super().__init__(f"Offline and no cached data for {key.storage_key}")


class RemoteError(FolioError):
    """The remote document store or catalog API failed."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


class DocumentNotFoundError(RemoteError):
    """A single-document fetch or update targeted a document that does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document {collection}/{doc_id} not found")


class PartialMutationError(RemoteError):
    """
    A multi-step mutation failed after at least one step took effect.

    Completed steps are not rolled back. The underlying failure is kept in
    ``cause`` so callers can inspect which sub-operation broke.
    """

    def __init__(
        self,
        mutation: str,
        completed_steps: tuple[str, ...],
        failed_step: str,
        cause: BaseException,
    ) -> None:
        self.mutation = mutation
        self.completed_steps = completed_steps
        self.failed_step = failed_step
        super().__init__(
            f"Mutation {mutation} failed at step '{failed_step}' "
            f"after completing {list(completed_steps)}: {cause}",
            cause=cause,
        )


class SnapshotStoreError(FolioError):
    """Local snapshot persistence failed."""
    pass


__all__ = [
    "FolioError",
    "OfflineNoDataError",
    "RemoteError",
    "DocumentNotFoundError",
    "PartialMutationError",
    "SnapshotStoreError",
]
