"""
User Queries

Cached reads of the ``users`` collection. All of them carry the ``user`` tag,
so any mutation touching users or books refreshes them.
"""

from __future__ import annotations

from typing import Any

from folio.caching.errors import DocumentNotFoundError
from folio.caching.keys import QueryDefinition, Tag
from folio.caching.query_cache import QueryCache
from folio.datasource.base import RemoteDataSource
from folio.models.user import UserProfile
from folio.notifications import Notifier
from folio.repositories.base import CachedRepository, QueryOutcome

USERS_COLLECTION = "users"

ALL_USERS = QueryDefinition("fetch_users", "allUsers", frozenset({Tag.USER}))
SINGLE_USER = QueryDefinition("fetch_single_user", "singleUsers", frozenset({Tag.USER}))
MY_PROFILE = QueryDefinition("fetch_my_profile", "MyProfile", frozenset({Tag.USER}))


class UserRepository(CachedRepository):
    """Read access to user profiles."""

    def __init__(
        self,
        cache: QueryCache,
        remote: RemoteDataSource,
        notifier: Notifier | None = None,
    ) -> None:
        super().__init__(cache, notifier)
        self._remote = remote

    async def fetch_users(self) -> QueryOutcome[list[UserProfile]]:
        """Every user profile. Empty list when offline with nothing cached."""

        async def fetch() -> list[dict[str, Any]]:
            docs = await self._remote.fetch_all(USERS_COLLECTION)
            return [UserProfile.from_document(doc_id, data).to_document() for doc_id, data in docs]

        return await self._query(
            ALL_USERS,
            None,
            fetch,
            decode=lambda raw: [UserProfile.model_validate(item) for item in raw],
            default=list,
        )

    async def fetch_single_user(self, uid: str) -> QueryOutcome[UserProfile]:
        return await self._profile_query(SINGLE_USER, uid)

    async def fetch_my_profile(self, uid: str) -> QueryOutcome[UserProfile]:
        """The signed-in user's own profile, cached separately from other lookups."""
        return await self._profile_query(MY_PROFILE, uid)

    async def _profile_query(
        self, definition: QueryDefinition, uid: str
    ) -> QueryOutcome[UserProfile]:
        if not uid:
            raise ValueError("uid cannot be empty")

        async def fetch() -> dict[str, Any]:
            try:
                data = await self._remote.fetch_one(USERS_COLLECTION, uid)
            except DocumentNotFoundError:
                # A missing profile reads as an empty one
                data = {}
            return UserProfile.from_document(uid, data).to_document()

        return await self._query(
            definition,
            uid,
            fetch,
            decode=UserProfile.model_validate,
            default=lambda: UserProfile(uid=uid),
        )


__all__ = ["UserRepository", "ALL_USERS", "SINGLE_USER", "MY_PROFILE", "USERS_COLLECTION"]
