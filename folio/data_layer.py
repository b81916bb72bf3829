"""
Folio Data Layer

Owns the lifecycle of every data-access component: the snapshot store is
opened once at start and closed once at shutdown; the connectivity probe and
the catalog client are closed with it.

    async with DataLayer.from_settings(get_settings(), remote=source) as data:
        outcome = await data.users.fetch_my_profile(uid)
        await data.books.add_book_to_favorite(uid, book_id)
"""

from __future__ import annotations

from types import TracebackType

import structlog

from folio.caching.connectivity import ConnectivityOracle, HttpConnectivityProbe
from folio.caching.errors import RemoteError
from folio.caching.mutations import MutationExecutor
from folio.caching.query_cache import QueryCache
from folio.caching.snapshot_store import SnapshotStore, create_snapshot_store
from folio.caching.tag_registry import TagRegistry
from folio.config import Settings, get_settings
from folio.datasource.base import RemoteDataSource
from folio.models.book import BookSearchResult
from folio.monitoring.logging import configure_logging
from folio.notifications import LogNotifier, Messages, Notice, Notifier, deliver
from folio.repositories.books import BookRepository
from folio.repositories.users import UserRepository
from folio.services.book_search import BookNotFoundError, BookSearchService

logger = structlog.get_logger(__name__)


class DataLayer:
    """Container wiring the cache, the mutation executor and the repositories."""

    def __init__(
        self,
        store: SnapshotStore,
        oracle: ConnectivityOracle,
        remote: RemoteDataSource,
        notifier: Notifier | None = None,
        search: BookSearchService | None = None,
    ) -> None:
        self.store = store
        self.oracle = oracle
        self.remote = remote
        self.notifier = notifier
        self.search = search if search is not None else BookSearchService()

        self.registry = TagRegistry()
        self.cache = QueryCache(store, oracle, self.registry)
        self.executor = MutationExecutor(self.cache, notifier)
        self.users = UserRepository(self.cache, remote, notifier)
        self.books = BookRepository(self.executor, remote)
        self._opened = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        remote: RemoteDataSource,
        notifier: Notifier | None = None,
        oracle: ConnectivityOracle | None = None,
        store: SnapshotStore | None = None,
        configure_logs: bool = False,
    ) -> DataLayer:
        """Build a data layer with the adapters selected by ``settings``."""
        if settings is None:
            settings = get_settings()
        if configure_logs:
            configure_logging(level=settings.log_level, json_output=settings.log_json)

        if store is None:
            store = create_snapshot_store(settings)
        if oracle is None:
            oracle = HttpConnectivityProbe(
                settings.connectivity_probe_url,
                timeout_seconds=settings.connectivity_timeout_seconds,
            )

        return cls(
            store=store,
            oracle=oracle,
            remote=remote,
            notifier=notifier if notifier is not None else LogNotifier(),
            search=BookSearchService.from_settings(settings),
        )

    @property
    def is_open(self) -> bool:
        return self._opened

    async def open(self) -> None:
        if self._opened:
            return
        await self.store.open()
        self._opened = True
        logger.info("data_layer_opened", store=type(self.store).__name__)

    async def close(self) -> None:
        if not self._opened:
            return
        self._opened = False
        try:
            await self.search.close()
            close_oracle = getattr(self.oracle, "close", None)
            if close_oracle is not None:
                await close_oracle()
        finally:
            await self.store.close()
        logger.info("data_layer_closed")

    async def __aenter__(self) -> DataLayer:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def search_book(
        self,
        term: str,
        author: str = "",
        language: str | None = None,
    ) -> BookSearchResult | None:
        """
        Catalog search with a user notice on failure.

        Returns None when nothing was found or the catalog could not be reached.
        """
        try:
            return await self.search.search(term, author, language)
        except (BookNotFoundError, RemoteError) as e:
            logger.warning("book_search_failed", term=term, error=str(e))
            await deliver(
                self.notifier,
                Notice.error(Messages.SOMETHING_WENT_WRONG, Messages.CATALOG_PROBLEM),
            )
            return None


__all__ = ["DataLayer"]
