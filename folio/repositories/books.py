"""
Book Mutations

Writes to books, reader shelves and book chats. Every mutation is declared
once below with the tags it invalidates; the tags are deliberately coarse so a
write never leaves a dependent read cached.
"""

from __future__ import annotations

from typing import Any

from folio.caching.keys import Tag
from folio.caching.mutations import (
    MutationDescriptor,
    MutationExecutor,
    MutationResult,
    MutationStep,
)
from folio.datasource.base import MutationSpec, RemoteDataSource
from folio.models.base import utc_now_iso
from folio.models.book import Book, BookReview, ChatMessage
from folio.notifications import Messages

BOOKS = "books"
USER_BOOKS = "userBook"
BOOK_CHATS = "BookChats"
USERS = "users"

_BOOK_AND_USER = (Tag.BOOK, Tag.USER)

REMOVE_USER_BOOK = MutationDescriptor.declare(
    "remove_user_book",
    _BOOK_AND_USER,
    success_message=Messages.BOOK_DELETED,
    failure_message=Messages.BOOK_DELETE_FAILED,
)
ADD_BOOK_TO_CHAT = MutationDescriptor.declare(
    "add_book_to_chat",
    (Tag.CHAT,),
    failure_message=None,
)
ADD_MESSAGE_TO_CHAT = MutationDescriptor.declare(
    "add_message_to_chat",
    (Tag.CHAT,),
    failure_message=Messages.MESSAGE_FAILED,
)
REMOVE_MESSAGE_FROM_CHAT = MutationDescriptor.declare(
    "remove_message_from_chat",
    (Tag.CHAT,),
    failure_message=Messages.MESSAGE_FAILED,
)
ADD_BOOK_REVIEW = MutationDescriptor.declare(
    "add_book_review",
    _BOOK_AND_USER,
    success_message=Messages.REVIEW_ADDED,
)
ADD_BOOK_TO_FAVORITE = MutationDescriptor.declare(
    "add_book_to_favorite",
    _BOOK_AND_USER,
    success_message=Messages.FAVORITE_ADDED,
)
ADD_BOOK_TO_START_READING = MutationDescriptor.declare(
    "add_book_to_start_reading",
    _BOOK_AND_USER,
)
ADD_BOOK_TO_ENDED_BOOK = MutationDescriptor.declare(
    "add_book_to_ended_book",
    _BOOK_AND_USER,
    success_message=Messages.BOOK_FINISHED,
)
ADD_USER_BOOK = MutationDescriptor.declare(
    "add_user_book",
    _BOOK_AND_USER,
    success_message=Messages.BOOK_ADDED,
)
DELETE_BOOK_FROM_FAVORITE = MutationDescriptor.declare(
    "delete_book_from_favorite",
    _BOOK_AND_USER,
    success_message=Messages.FAVORITE_REMOVED,
)

ALL_MUTATIONS: tuple[MutationDescriptor, ...] = (
    REMOVE_USER_BOOK,
    ADD_BOOK_TO_CHAT,
    ADD_MESSAGE_TO_CHAT,
    REMOVE_MESSAGE_FROM_CHAT,
    ADD_BOOK_REVIEW,
    ADD_BOOK_TO_FAVORITE,
    ADD_BOOK_TO_START_READING,
    ADD_BOOK_TO_ENDED_BOOK,
    ADD_USER_BOOK,
    DELETE_BOOK_FROM_FAVORITE,
)


class BookRepository:
    """Book, shelf and chat mutations."""

    def __init__(self, executor: MutationExecutor, remote: RemoteDataSource) -> None:
        self._executor = executor
        self._remote = remote

    async def _run(self, descriptor: MutationDescriptor, *steps: MutationStep) -> MutationResult:
        return await self._executor.execute(descriptor, steps)

    def _update(
        self,
        name: str,
        collection: str,
        doc_id: str,
        spec: MutationSpec,
    ) -> MutationStep:
        async def action() -> None:
            await self._remote.write(collection, doc_id, spec)

        return MutationStep(name, action)

    # ───────────────────────────────────────────────────────────────────────
    # Reader books
    # ───────────────────────────────────────────────────────────────────────

    async def add_user_book(self, book: Book | dict[str, Any]) -> MutationResult:
        """Add a reader-supplied book. The result value is the new document id."""
        data = book.to_document() if isinstance(book, Book) else Book.model_validate(book).to_document()

        async def action() -> str:
            return await self._remote.add(USER_BOOKS, data)

        return await self._run(ADD_USER_BOOK, MutationStep("add_document", action))

    async def remove_user_book(self, book_id: str) -> MutationResult:
        async def action() -> None:
            await self._remote.delete(USER_BOOKS, book_id)

        return await self._run(REMOVE_USER_BOOK, MutationStep("delete_document", action))

    async def add_book_review(
        self,
        book_id: str,
        review: BookReview,
        profile_uid: str,
    ) -> MutationResult:
        """
        Append a review to the book and bump the reviewer's review counter.

        The review goes to the catalog book when one exists, otherwise to the
        reader-added book with the same id. The counter update is a second
        write; if it fails the review stays in place.
        """
        review_doc = review.to_document()

        async def append_review() -> str:
            target = BOOKS if await self._remote.exists(BOOKS, book_id) else USER_BOOKS
            await self._remote.write(target, book_id, MutationSpec().array_union("comments", review_doc))
            return target

        return await self._run(
            ADD_BOOK_REVIEW,
            MutationStep("append_review", append_review),
            self._update(
                "increment_review_count",
                USERS,
                profile_uid,
                MutationSpec().increment("revieCount", 1),
            ),
        )

    # ───────────────────────────────────────────────────────────────────────
    # Shelves
    # ───────────────────────────────────────────────────────────────────────

    async def add_book_to_favorite(self, uid: str, book_id: str) -> MutationResult:
        return await self._run(
            ADD_BOOK_TO_FAVORITE,
            self._update("add_favorite", USERS, uid, MutationSpec().array_union("favoritesBook", book_id)),
        )

    async def delete_book_from_favorite(self, uid: str, book_id: str) -> MutationResult:
        return await self._run(
            DELETE_BOOK_FROM_FAVORITE,
            self._update("remove_favorite", USERS, uid, MutationSpec().array_remove("favoritesBook", book_id)),
        )

    async def add_book_to_start_reading(self, uid: str, book_id: str) -> MutationResult:
        return await self._run(
            ADD_BOOK_TO_START_READING,
            self._update("start_reading", USERS, uid, MutationSpec().array_union("startReadBook", book_id)),
        )

    async def add_book_to_ended_book(self, uid: str, book_id: str) -> MutationResult:
        """Move a book from the reading shelf to the finished shelf in one write."""
        spec = (
            MutationSpec()
            .array_remove("startReadBook", book_id)
            .array_union("finishedBook", book_id)
        )
        return await self._run(ADD_BOOK_TO_ENDED_BOOK, self._update("finish_book", USERS, uid, spec))

    # ───────────────────────────────────────────────────────────────────────
    # Chats
    # ───────────────────────────────────────────────────────────────────────

    async def add_book_to_chat(self, book_id: str) -> MutationResult:
        """Create the book's chat document unless it already exists."""

        async def action() -> bool:
            if await self._remote.exists(BOOK_CHATS, book_id):
                return False
            await self._remote.write(
                BOOK_CHATS, book_id, MutationSpec().set("message", []), create=True
            )
            return True

        return await self._run(ADD_BOOK_TO_CHAT, MutationStep("ensure_chat", action))

    async def add_message_to_chat(self, book_id: str, uid: str, message: str) -> MutationResult:
        """Post a message. The result value is the stored ChatMessage."""
        chat_message = ChatMessage(uid=uid, message=message, time_stamp=utc_now_iso())

        async def action() -> ChatMessage:
            await self._remote.write(
                BOOK_CHATS,
                book_id,
                MutationSpec().array_union("comments", chat_message.to_document()),
            )
            return chat_message

        return await self._run(ADD_MESSAGE_TO_CHAT, MutationStep("append_message", action))

    async def remove_message_from_chat(
        self,
        book_id: str,
        uid: str,
        message: str,
        time_stamp: str,
    ) -> MutationResult:
        stored = ChatMessage(uid=uid, message=message, time_stamp=time_stamp)
        return await self._run(
            REMOVE_MESSAGE_FROM_CHAT,
            self._update(
                "remove_message",
                BOOK_CHATS,
                book_id,
                MutationSpec().array_remove("comments", stored.to_document()),
            ),
        )


__all__ = [
    "BookRepository",
    "ALL_MUTATIONS",
    "REMOVE_USER_BOOK",
    "ADD_BOOK_TO_CHAT",
    "ADD_MESSAGE_TO_CHAT",
    "REMOVE_MESSAGE_FROM_CHAT",
    "ADD_BOOK_REVIEW",
    "ADD_BOOK_TO_FAVORITE",
    "ADD_BOOK_TO_START_READING",
    "ADD_BOOK_TO_ENDED_BOOK",
    "ADD_USER_BOOK",
    "DELETE_BOOK_FROM_FAVORITE",
]
