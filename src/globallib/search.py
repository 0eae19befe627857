"""
Cached bibliographic search.

Checks the result cache first; on a miss queries Open Library and writes
the fresh results back before returning them.
"""

import logging
from dataclasses import dataclass, field

from .cache import ResultCache, normalize_query
from .models import BookSummary
from .openlibrary import OpenLibraryClient

logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    """Books for a query and where they came from."""

    query: str
    books: list[BookSummary] = field(default_factory=list)
    from_cache: bool = False

    @property
    def found(self) -> bool:
        return bool(self.books)


class BookSearcher:
    """Search with a durable cache in front of Open Library."""

    def __init__(self, client: OpenLibraryClient, cache: ResultCache):
        self.client = client
        self.cache = cache

    def lookup_cached(self, query: str) -> SearchOutcome | None:
        """Serve a query from the cache without touching the network."""
        if not query.strip():
            raise ValueError("Query must not be empty")
        cached = self.cache.lookup(query)
        if cached is None:
            return None
        logger.debug(f"Cache hit for {normalize_query(query)!r}")
        return SearchOutcome(query=query, books=cached, from_cache=True)

    async def search(self, query: str) -> SearchOutcome:
        """
        Find books for a free-text query.

        Raises:
            ValueError: if the query is empty or whitespace
            UpstreamUnavailable: if Open Library could not be reached
        """
        outcome = self.lookup_cached(query)
        if outcome is not None:
            return outcome
        return await self.fetch(query)

    async def fetch(self, query: str) -> SearchOutcome:
        """Query Open Library, bypassing the cache, and store the results."""
        books = await self.client.search(query)
        self.cache.store(query, books)

        logger.info(f"Open Library returned {len(books)} result(s) for {query!r}")
        return SearchOutcome(query=query, books=books, from_cache=False)
