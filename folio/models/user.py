"""
User Models
"""

from typing import Any

from pydantic import Field

from folio.models.base import FolioModel


class UserProfile(FolioModel):
    """
    A reader's profile document from the ``users`` collection.

    ``uid`` is the document id; it is merged into the data on read. The
    review counter keeps its historical wire name ``revieCount``.
    """

    uid: str
    email: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    photo_url: str | None = Field(default=None, alias="photoURL")
    favorite_books: list[str] = Field(default_factory=list, alias="favoritesBook")
    start_read_books: list[str] = Field(default_factory=list, alias="startReadBook")
    finished_books: list[str] = Field(default_factory=list, alias="finishedBook")
    review_count: int = Field(default=0, ge=0, alias="revieCount")

    @classmethod
    def from_document(cls, uid: str, data: dict[str, Any] | None) -> "UserProfile":
        return cls.model_validate({**(data or {}), "uid": uid})

    @property
    def is_empty(self) -> bool:
        """True for the placeholder profile returned when nothing is known about the user."""
        return self == UserProfile(uid=self.uid)
