"""
Folio Services
"""

from folio.services.book_search import (
    BookNotFoundError,
    BookSearchService,
    LooseSearchStrategy,
    SearchStrategy,
    StrictSearchStrategy,
    normalize_term,
)

__all__ = [
    "BookNotFoundError",
    "BookSearchService",
    "SearchStrategy",
    "StrictSearchStrategy",
    "LooseSearchStrategy",
    "normalize_term",
]
