"""
In-Memory Document Store

RemoteDataSource backed by nested dicts, with document-store semantics close to
the production backend: reads return deep copies, ``add`` generates ids, field
updates fail on missing documents unless asked to create them.

Used by tests and local development. Supports artificial latency and injected
failures so offline and partial-failure paths can be exercised.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from collections import Counter
from typing import Any

import structlog

from folio.caching.errors import DocumentNotFoundError, RemoteError
from folio.datasource.base import FieldOpKind, MutationSpec

logger = structlog.get_logger(__name__)


class InMemoryDocumentStore:
    """Process-local document store implementing RemoteDataSource."""

    def __init__(
        self,
        seed: dict[str, dict[str, dict[str, Any]]] | None = None,
        latency_seconds: float = 0.0,
    ) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = copy.deepcopy(seed or {})
        self._latency = latency_seconds
        self._lock = asyncio.Lock()
        self._failures: dict[tuple[str, str | None], list[BaseException]] = {}
        self.calls: Counter[str] = Counter()

    # ───────────────────────────────────────────────────────────────────────
    # Test hooks
    # ───────────────────────────────────────────────────────────────────────

    def fail_next(
        self,
        operation: str,
        collection: str | None = None,
        error: BaseException | None = None,
        times: int = 1,
    ) -> None:
        """Make the next ``times`` calls of ``operation`` (optionally scoped to a collection) raise."""
        err = error or RemoteError(f"Injected failure in {operation}")
        self._failures.setdefault((operation, collection), []).extend([err] * times)

    def set_latency(self, seconds: float) -> None:
        self._latency = seconds

    def document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Synchronous peek at a stored document (a copy), for assertions."""
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def _enter(self, operation: str, collection: str) -> None:
        self.calls[operation] += 1
        if self._latency > 0:
            await asyncio.sleep(self._latency)
        for scope in ((operation, collection), (operation, None)):
            pending = self._failures.get(scope)
            if pending:
                raise pending.pop(0)

    # ───────────────────────────────────────────────────────────────────────
    # RemoteDataSource
    # ───────────────────────────────────────────────────────────────────────

    async def fetch_one(self, collection: str, doc_id: str) -> dict[str, Any]:
        await self._enter("fetch_one", collection)
        doc = self._collections.get(collection, {}).get(doc_id)
        if doc is None:
            raise DocumentNotFoundError(collection, doc_id)
        return copy.deepcopy(doc)

    async def fetch_all(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        await self._enter("fetch_all", collection)
        docs = self._collections.get(collection, {})
        return [(doc_id, copy.deepcopy(data)) for doc_id, data in docs.items()]

    async def exists(self, collection: str, doc_id: str) -> bool:
        await self._enter("exists", collection)
        return doc_id in self._collections.get(collection, {})

    async def write(
        self,
        collection: str,
        doc_id: str,
        spec: MutationSpec,
        *,
        create: bool = False,
    ) -> None:
        await self._enter("write", collection)
        async with self._lock:
            docs = self._collections.setdefault(collection, {})
            doc = docs.get(doc_id)
            if doc is None:
                if not create:
                    raise DocumentNotFoundError(collection, doc_id)
                doc = {}
            # Apply to a copy so a bad op leaves the document untouched
            updated = copy.deepcopy(doc)
            for op in spec.ops:
                self._apply(updated, op.kind, op.field, op.value)
            docs[doc_id] = updated
        logger.debug("document_written", collection=collection, doc_id=doc_id, ops=len(spec))

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        await self._enter("add", collection)
        doc_id = uuid.uuid4().hex[:20]
        async with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        return doc_id

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._enter("delete", collection)
        async with self._lock:
            self._collections.get(collection, {}).pop(doc_id, None)

    @staticmethod
    def _apply(doc: dict[str, Any], kind: FieldOpKind, field: str, value: Any) -> None:
        if kind == FieldOpKind.SET:
            doc[field] = copy.deepcopy(value)
        elif kind == FieldOpKind.ARRAY_UNION:
            current = doc.get(field)
            items = list(current) if isinstance(current, list) else []
            for item in value:
                if item not in items:
                    items.append(copy.deepcopy(item))
            doc[field] = items
        elif kind == FieldOpKind.ARRAY_REMOVE:
            current = doc.get(field)
            items = list(current) if isinstance(current, list) else []
            doc[field] = [item for item in items if item not in value]
        elif kind == FieldOpKind.INCREMENT:
            current = doc.get(field)
            if isinstance(current, (int, float)) and not isinstance(current, bool):
                doc[field] = current + value
            else:
                doc[field] = value
        else:
            raise RemoteError(f"Unsupported field operation: {kind}")


__all__ = ["InMemoryDocumentStore"]
