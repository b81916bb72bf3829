"""
Folio Repositories

Domain-level queries and mutations built on the query cache and the mutation
executor.
"""

from folio.repositories.base import CachedRepository, OutcomeStatus, QueryOutcome
from folio.repositories.books import ALL_MUTATIONS, BookRepository
from folio.repositories.users import UserRepository

__all__ = [
    "CachedRepository",
    "OutcomeStatus",
    "QueryOutcome",
    "UserRepository",
    "BookRepository",
    "ALL_MUTATIONS",
]
