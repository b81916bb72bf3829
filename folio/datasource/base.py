"""
Remote Data Source Interface

Document-store contract used by repositories: whole-document reads by id or
collection, and field-level writes described by a MutationSpec.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class FieldOpKind(str, Enum):
    SET = "set"
    ARRAY_UNION = "array_union"
    ARRAY_REMOVE = "array_remove"
    INCREMENT = "increment"


@dataclass(frozen=True)
class FieldOp:
    """A single field update."""

    kind: FieldOpKind
    field: str
    value: Any


@dataclass(frozen=True)
class MutationSpec:
    """
    Immutable, ordered list of field updates applied in one write.

    Builder methods return a new spec:

        spec = MutationSpec().array_remove("startReadBook", book_id).array_union("finishedBook", book_id)
    """

    ops: tuple[FieldOp, ...] = ()

    def _with(self, kind: FieldOpKind, field: str, value: Any) -> MutationSpec:
        if not field:
            raise ValueError("Field name cannot be empty")
        return MutationSpec(self.ops + (FieldOp(kind, field, value),))

    def set(self, field: str, value: Any) -> MutationSpec:
        return self._with(FieldOpKind.SET, field, value)

    def array_union(self, field: str, *values: Any) -> MutationSpec:
        """Append each value not already present in the array field."""
        return self._with(FieldOpKind.ARRAY_UNION, field, values)

    def array_remove(self, field: str, *values: Any) -> MutationSpec:
        """Remove every element equal to any of the values."""
        return self._with(FieldOpKind.ARRAY_REMOVE, field, values)

    def increment(self, field: str, delta: int | float = 1) -> MutationSpec:
        return self._with(FieldOpKind.INCREMENT, field, delta)

    @classmethod
    def from_fields(cls, data: dict[str, Any]) -> MutationSpec:
        """Spec that sets every key of ``data``."""
        spec = cls()
        for key, value in data.items():
            spec = spec.set(key, value)
        return spec

    def __bool__(self) -> bool:
        return bool(self.ops)

    def __len__(self) -> int:
        return len(self.ops)


@runtime_checkable
class RemoteDataSource(Protocol):
    """
    Remote document store.

    Implementations raise RemoteError (or DocumentNotFoundError) for every
    failure; they never return partial results.
    """

    async def fetch_one(self, collection: str, doc_id: str) -> dict[str, Any]:
        """Fetch one document. Raises DocumentNotFoundError if it does not exist."""
        ...

    async def fetch_all(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        """Fetch every document of a collection as ``(doc_id, data)`` pairs."""
        ...

    async def exists(self, collection: str, doc_id: str) -> bool:
        ...

    async def write(
        self,
        collection: str,
        doc_id: str,
        spec: MutationSpec,
        *,
        create: bool = False,
    ) -> None:
        """
        Apply ``spec`` to a document.

        With ``create=False`` the document must exist (DocumentNotFoundError
        otherwise). With ``create=True`` a missing document is created first.
        """
        ...

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""
        ...

    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        ...


__all__ = ["FieldOpKind", "FieldOp", "MutationSpec", "RemoteDataSource"]
