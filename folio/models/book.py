"""
Book Models

Books added by readers (``userBook``), reviews appended to a book's
``comments`` array, chat messages and catalog search results.
"""

from typing import Any

from pydantic import ConfigDict, Field, field_validator

from folio.models.base import FolioModel, utc_now_iso


class Book(FolioModel):
    """A book document. Unknown catalog fields are kept as extras."""

    title: str = Field(min_length=1)
    authors: list[str] = Field(default_factory=list)
    description: str | None = None
    image: str | None = None
    page_count: int | None = Field(default=None, ge=0, alias="pageCount")
    categories: list[str] = Field(default_factory=list)
    language: str | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")


class BookReview(FolioModel):
    """A review appended to a book's ``comments``."""

    uid: str
    text: str = ""
    rating: int = Field(ge=1, le=5)
    time_stamp: str = Field(default_factory=utc_now_iso, alias="timeStamp")


class ChatMessage(FolioModel):
    """
    A message in a book's chat.

    Removal matches on the exact ``(uid, message, timeStamp)`` triple, so the
    timestamp must be carried over from the stored message and the text is
    kept exactly as written.
    """

    model_config = ConfigDict(str_strip_whitespace=False)

    uid: str
    message: str = Field(min_length=1)
    time_stamp: str = Field(default_factory=utc_now_iso, alias="timeStamp")


class BookSearchResult(FolioModel):
    """Catalog volume info plus the best available cover image."""

    volume_id: str = Field(alias="id")
    title: str
    authors: list[str] = Field(default_factory=list)
    description: str | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")
    categories: list[str] = Field(default_factory=list)
    language: str | None = None
    page_count: int | None = Field(default=None, alias="pageCount")
    image_links: dict[str, str] = Field(default_factory=dict, alias="imageLinks")
    high_quality_image: str = Field(alias="HighQualityImage")

    @field_validator("authors", "categories", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v
