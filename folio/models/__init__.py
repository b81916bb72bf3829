"""
Folio Domain Models
"""

from folio.models.base import FolioModel, utc_now_iso
from folio.models.book import Book, BookReview, BookSearchResult, ChatMessage
from folio.models.user import UserProfile

__all__ = [
    "FolioModel",
    "utc_now_iso",
    "UserProfile",
    "Book",
    "BookReview",
    "ChatMessage",
    "BookSearchResult",
]
