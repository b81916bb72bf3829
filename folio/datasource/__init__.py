"""
Folio Remote Data Sources
"""

from folio.datasource.base import FieldOp, FieldOpKind, MutationSpec, RemoteDataSource
from folio.datasource.memory import InMemoryDocumentStore

__all__ = [
    "RemoteDataSource",
    "MutationSpec",
    "FieldOp",
    "FieldOpKind",
    "InMemoryDocumentStore",
]
