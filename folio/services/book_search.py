"""
Book Catalog Search

Finds a single catalog volume for a title/author pair. The catalog often
misses on a strict field-qualified query, so search runs an ordered list of
strategies, each under its own timeout, and takes the first one that returns
a volume with cover images. Search results are not cached.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx
import structlog

from folio.caching.errors import FolioError, RemoteError
from folio.models.book import BookSearchResult
from folio.monitoring.logging import log_duration

if TYPE_CHECKING:
    from folio.config import Settings

logger = structlog.get_logger(__name__)

VOLUME_FIELDS = (
    "items(id,volumeInfo(imageLinks,title,publishedDate,description,"
    "authors,categories,language,pageCount))"
)
DETAIL_FIELDS = "id,volumeInfo(imageLinks)"

_BRACKETED = re.compile(r"\[.*?\]|\(.*?\)")
_EPUB = re.compile(r"\.epub\b", re.IGNORECASE)
_SEPARATORS = re.compile(r"[\s_\-+]+")


class BookNotFoundError(FolioError):
    """No search strategy found a volume with cover images."""

    def __init__(self, term: str, author: str = "") -> None:
        self.term = term
        self.author = author
        super().__init__(f"No catalog match for {term!r} by {author!r}")


def normalize_term(text: str) -> str:
    """
    Turn a file-name-like title or author into a catalog query fragment.

    Bracketed and parenthesized annotations and ``.epub`` suffixes are
    dropped; runs of whitespace, underscores and dashes become ``+``.

        >>> normalize_term("  Dune_(Deluxe Edition) [2019].epub ")
        'Dune'
    """
    cleaned = _BRACKETED.sub(" ", text)
    cleaned = _EPUB.sub(" ", cleaned)
    return _SEPARATORS.sub("+", cleaned.strip()).strip("+")


class SearchStrategy(Protocol):
    name: str

    def build_query(self, term: str, author: str) -> str:
        """Build the catalog ``q`` value from normalized fragments."""
        ...


@dataclass(frozen=True)
class StrictSearchStrategy:
    """Field-qualified query: ``intitle:T+inauthor:A``."""

    name: str = "strict"

    def build_query(self, term: str, author: str) -> str:
        query = f"intitle:{term}"
        if author:
            query += f"+inauthor:{author}"
        return query


@dataclass(frozen=True)
class LooseSearchStrategy:
    """Free-text query: ``T+A``."""

    name: str = "loose"

    def build_query(self, term: str, author: str) -> str:
        return f"{term}+{author}" if author else term


DEFAULT_STRATEGIES: tuple[SearchStrategy, ...] = (StrictSearchStrategy(), LooseSearchStrategy())


class BookSearchService:
    """Client for the book catalog's volume search."""

    def __init__(
        self,
        base_url: str = "https://www.googleapis.com/books/v1",
        api_key: str | None = None,
        language: str = "en",
        max_results: int = 40,
        timeout_seconds: float = 10.0,
        strategies: tuple[SearchStrategy, ...] = DEFAULT_STRATEGIES,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not strategies:
            raise ValueError("At least one search strategy is required")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._language = language
        self._max_results = max_results
        self._timeout = timeout_seconds
        self._strategies = strategies
        self._http_client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> BookSearchService:
        return cls(
            base_url=settings.books_api_base_url,
            api_key=settings.books_api_key,
            language=settings.books_language,
            max_results=settings.books_max_results,
            timeout_seconds=settings.search_timeout_seconds,
            client=client,
        )

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client (lazy initialization)."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    async def search(
        self,
        term: str,
        author: str = "",
        language: str | None = None,
    ) -> BookSearchResult:
        """
        Find the best catalog match for ``term`` and ``author``.

        Raises:
            ValueError: If the normalized term is empty
            BookNotFoundError: Every strategy completed without a match
            RemoteError: The last strategy failed on transport or timeout
        """
        norm_term = normalize_term(term)
        norm_author = normalize_term(author)
        if not norm_term:
            raise ValueError("Search term cannot be empty")
        lang = language or self._language

        last_error: Exception | None = None
        for strategy in self._strategies:
            last_error = None
            query = strategy.build_query(norm_term, norm_author)
            try:
                with log_duration(logger, "book_search_strategy", strategy=strategy.name):
                    async with asyncio.timeout(self._timeout):
                        result = await self._run_strategy(query, lang)
            except (httpx.HTTPError, TimeoutError, ValueError, KeyError) as e:
                last_error = e
                continue
            if result is not None:
                logger.info("book_search_matched", strategy=strategy.name, volume_id=result.volume_id)
                return result
            logger.debug("book_search_no_match", strategy=strategy.name)

        if last_error is not None:
            raise RemoteError(
                f"Book search failed: {type(last_error).__name__}: {last_error}",
                cause=last_error,
            ) from last_error
        raise BookNotFoundError(term, author)

    async def _run_strategy(self, query: str, language: str) -> BookSearchResult | None:
        item = await self._find_volume(query, language)
        if item is None:
            return None
        image = await self._high_quality_image(item)
        volume_info = dict(item["volumeInfo"])
        return BookSearchResult.model_validate(
            {**volume_info, "id": item["id"], "HighQualityImage": image}
        )

    def _params(self, **params: Any) -> dict[str, Any]:
        if self._api_key:
            params["key"] = self._api_key
        return params

    async def _find_volume(self, query: str, language: str) -> dict[str, Any] | None:
        # The catalog reads "+" in q as a term separator; httpx form-encodes
        # spaces as "+" on the wire
        response = await self._get_client().get(
            f"{self._base_url}/volumes",
            params=self._params(
                q=query.replace("+", " "),
                langRestrict=language,
                hl=language,
                printType="all",
                fields=VOLUME_FIELDS,
                orderBy="relevance",
                maxResults=self._max_results,
            ),
        )
        response.raise_for_status()
        for item in response.json().get("items") or []:
            if item.get("volumeInfo", {}).get("imageLinks"):
                return item
        return None

    async def _high_quality_image(self, item: dict[str, Any]) -> str:
        response = await self._get_client().get(
            f"{self._base_url}/volumes/{item['id']}",
            params=self._params(fields=DETAIL_FIELDS),
        )
        response.raise_for_status()
        detail_links = response.json().get("volumeInfo", {}).get("imageLinks") or {}
        fallback_links = item["volumeInfo"]["imageLinks"]
        return detail_links.get("extraLarge") or fallback_links.get("thumbnail") or next(
            iter(fallback_links.values())
        )


__all__ = [
    "BookNotFoundError",
    "normalize_term",
    "SearchStrategy",
    "StrictSearchStrategy",
    "LooseSearchStrategy",
    "DEFAULT_STRATEGIES",
    "BookSearchService",
]
