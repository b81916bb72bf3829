"""
Tests for book, shelf and chat mutations.
"""

import pytest

from folio.caching.errors import DocumentNotFoundError, PartialMutationError, RemoteError
from folio.caching.keys import Tag
from folio.datasource.base import MutationSpec
from folio.models.book import Book, BookReview
from folio.notifications import Messages, NoticeLevel
from folio.repositories.books import ALL_MUTATIONS, BookRepository
from folio.repositories.users import MY_PROFILE, UserRepository


@pytest.fixture
def books(executor, remote) -> BookRepository:
    return BookRepository(executor, remote)


@pytest.fixture
def users(cache, remote, notifier) -> UserRepository:
    return UserRepository(cache, remote, notifier)


class TestDeclarations:
    """Every mutation declares valid invalidation tags."""

    def test_all_mutations_declare_tags(self):
        names = {m.name for m in ALL_MUTATIONS}
        assert len(names) == len(ALL_MUTATIONS) == 10
        for descriptor in ALL_MUTATIONS:
            assert descriptor.invalidates

    def test_chat_mutations_only_touch_chat(self):
        chat = {m.name: m.invalidates for m in ALL_MUTATIONS if "chat" in m.name}
        assert set(chat) == {"add_book_to_chat", "add_message_to_chat", "remove_message_from_chat"}
        assert all(tags == frozenset({Tag.CHAT}) for tags in chat.values())


class TestShelves:
    """Tests for favorites and reading shelves."""

    @pytest.mark.asyncio
    async def test_add_favorite_refreshes_profile(self, books, users, remote, notifier):
        before = await users.fetch_my_profile("u1")
        assert before.value.favorite_books == ["b1"]

        await books.add_book_to_favorite("u1", "b7")

        assert notifier.messages == [Messages.FAVORITE_ADDED]
        after = await users.fetch_my_profile("u1")
        assert after.value.favorite_books == ["b1", "b7"]
        assert remote.calls["fetch_one"] == 2

    @pytest.mark.asyncio
    async def test_invalidated_profile_still_served_offline(self, books, users, oracle):
        await users.fetch_my_profile("u1")
        await books.add_book_to_favorite("u1", "b7")
        oracle.set_online(False)

        outcome = await users.fetch_my_profile("u1")

        assert outcome.stale is True
        assert outcome.value.favorite_books == ["b1"]

    @pytest.mark.asyncio
    async def test_delete_favorite(self, books, remote, notifier):
        await books.delete_book_from_favorite("u1", "b1")

        assert remote.document("users", "u1")["favoritesBook"] == []
        assert notifier.messages == [Messages.FAVORITE_REMOVED]

    @pytest.mark.asyncio
    async def test_start_reading_is_silent(self, books, remote, notifier):
        await books.add_book_to_start_reading("u1", "b5")

        assert remote.document("users", "u1")["startReadBook"] == ["b2", "b5"]
        assert notifier.notices == []

    @pytest.mark.asyncio
    async def test_finish_book_moves_between_shelves(self, books, remote, notifier):
        await books.add_book_to_ended_book("u1", "b2")

        doc = remote.document("users", "u1")
        assert doc["startReadBook"] == []
        assert doc["finishedBook"] == ["b2"]
        assert notifier.messages == [Messages.BOOK_FINISHED]
        assert remote.calls["write"] == 1

    @pytest.mark.asyncio
    async def test_shelf_update_for_missing_user_fails(self, books, notifier):
        with pytest.raises(DocumentNotFoundError):
            await books.add_book_to_favorite("ghost", "b1")

        assert notifier.notices[0].level == NoticeLevel.ERROR
        assert notifier.notices[0].message == Messages.SOMETHING_WENT_WRONG


class TestUserBooks:
    """Tests for reader-added books."""

    @pytest.mark.asyncio
    async def test_add_user_book(self, books, remote, notifier):
        result = await books.add_user_book(Book(title="Notes", authors=["Ada"], page_count=10))

        doc = remote.document("userBook", result.value)
        assert doc["title"] == "Notes"
        assert doc["pageCount"] == 10
        assert notifier.messages == [Messages.BOOK_ADDED]

    @pytest.mark.asyncio
    async def test_add_user_book_validates(self, books):
        with pytest.raises(ValueError):
            await books.add_user_book({"title": ""})

    @pytest.mark.asyncio
    async def test_remove_user_book(self, books, remote, notifier):
        await books.remove_user_book("ub1")

        assert remote.document("userBook", "ub1") is None
        assert notifier.messages == [Messages.BOOK_DELETED]

    @pytest.mark.asyncio
    async def test_remove_user_book_failure_message(self, books, remote, notifier):
        remote.fail_next("delete", "userBook")

        with pytest.raises(RemoteError):
            await books.remove_user_book("ub1")
        assert notifier.messages == [Messages.BOOK_DELETE_FAILED]


class TestReviews:
    """Tests for the two-step review mutation."""

    @pytest.mark.asyncio
    async def test_review_on_catalog_book(self, books, remote, notifier):
        review = BookReview(uid="u1", text="Great", rating=5)

        result = await books.add_book_review("b1", review, "u1")

        assert result.steps_completed == ("append_review", "increment_review_count")
        assert remote.document("books", "b1")["comments"] == [review.to_document()]
        assert remote.document("users", "u1")["revieCount"] == 3
        assert notifier.messages == [Messages.REVIEW_ADDED]

    @pytest.mark.asyncio
    async def test_review_falls_back_to_user_book(self, books, remote):
        review = BookReview(uid="u1", rating=4)

        await books.add_book_review("ub1", review, "u1")

        assert remote.document("userBook", "ub1")["comments"] == [review.to_document()]

    @pytest.mark.asyncio
    async def test_counter_failure_is_partial(self, books, users, remote, cache):
        """The review stays in place when the counter update fails; nothing is invalidated."""
        await users.fetch_my_profile("u1")
        remote.fail_next("write", "users", error=RemoteError("quota exceeded"))
        review = BookReview(uid="u1", rating=3)

        with pytest.raises(PartialMutationError) as exc_info:
            await books.add_book_review("b1", review, "u1")

        assert exc_info.value.completed_steps == ("append_review",)
        assert exc_info.value.failed_step == "increment_review_count"
        assert remote.document("books", "b1")["comments"] == [review.to_document()]
        assert remote.document("users", "u1")["revieCount"] == 2
        profile = await cache.peek(users_key("u1"))
        assert not profile.is_invalidated


def users_key(uid):
    return MY_PROFILE.key(uid)


class TestChats:
    """Tests for chat mutations."""

    @pytest.mark.asyncio
    async def test_add_book_to_chat_creates_once(self, books, remote):
        created = await books.add_book_to_chat("b2")
        again = await books.add_book_to_chat("b2")

        assert created.value is True
        assert again.value is False
        assert remote.document("BookChats", "b2") == {"message": []}

    @pytest.mark.asyncio
    async def test_add_and_remove_message(self, books, remote):
        result = await books.add_message_to_chat("b1", "u1", "Loved the ending")
        message = result.value

        comments = remote.document("BookChats", "b1")["comments"]
        assert comments == [message.to_document()]

        await books.remove_message_from_chat("b1", "u1", message.message, message.time_stamp)
        assert remote.document("BookChats", "b1")["comments"] == []

    @pytest.mark.asyncio
    async def test_remove_message_with_surrounding_whitespace(self, books, remote):
        stored = {"uid": "u2", "message": "  see you at chapter 3 ", "timeStamp": "2024-01-01T00:00:00Z"}
        await remote.write("BookChats", "b1", MutationSpec().array_union("comments", stored))

        await books.remove_message_from_chat(
            "b1", "u2", stored["message"], stored["timeStamp"]
        )

        assert remote.document("BookChats", "b1")["comments"] == []

    @pytest.mark.asyncio
    async def test_message_failure_notice(self, books, notifier):
        with pytest.raises(DocumentNotFoundError):
            await books.add_message_to_chat("no-chat", "u1", "hello")

        assert notifier.messages == [Messages.MESSAGE_FAILED]

    @pytest.mark.asyncio
    async def test_chat_mutation_leaves_user_reads(self, books, users, cache):
        await users.fetch_my_profile("u1")

        result = await books.add_message_to_chat("b1", "u1", "hi")

        assert result.invalidated_keys == frozenset()
        assert not (await cache.peek(users_key("u1"))).is_invalidated
