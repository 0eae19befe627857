"""
Open Library API client for globallib.

Keyless free-text book search plus cover and work-page URL helpers.

API Documentation: https://openlibrary.org/dev/docs/api/search
"""

import logging
from typing import Any

import httpx

from .errors import UpstreamUnavailable
from .models import COVER_SIZE_LISTING, BookSummary

logger = logging.getLogger(__name__)

# Open Library API endpoints
OL_API_BASE = "https://openlibrary.org"
OL_COVERS_BASE = "https://covers.openlibrary.org"

SEARCH_FIELDS = "key,title,author_name,cover_i,first_publish_year"


class OpenLibraryClient:
    """
    Client for the Open Library search API.

    Results are passed through in upstream relevance order, capped at
    max_search_results.
    """

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        max_search_results: int = 12,
        api_base: str = OL_API_BASE,
        covers_base: str = OL_COVERS_BASE,
    ):
        """
        Initialize the Open Library client.

        Args:
            timeout_seconds: Request timeout in seconds
            max_search_results: Maximum search results to return
            api_base: Base URL of the Open Library site
            covers_base: Base URL of the covers service
        """
        self.timeout = timeout_seconds
        self.max_search_results = max_search_results
        self.api_base = api_base.rstrip("/")
        self.covers_base = covers_base.rstrip("/")

    async def search(self, query: str) -> list[BookSummary]:
        """
        Search for books matching free text.

        Args:
            query: Title, author, or ISBN text

        Returns:
            Up to max_search_results books; empty when nothing matched

        Raises:
            UpstreamUnavailable: on a non-success status, transport error,
                timeout, or an undecodable body
        """
        url = f"{self.api_base}/search.json"
        params = {
            "q": query,
            "fields": SEARCH_FIELDS,
            "limit": self.max_search_results,
        }

        logger.debug(f"Searching Open Library: {query}")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(url, params=params, follow_redirects=True)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                logger.warning(f"HTTP error searching Open Library for {query!r}: {e}")
                raise UpstreamUnavailable(str(e)) from e
            except httpx.HTTPError as e:
                logger.warning(f"Transport error searching Open Library for {query!r}: {e}")
                raise UpstreamUnavailable(str(e)) from e
            except ValueError as e:
                logger.warning(f"Undecodable Open Library response for {query!r}")
                raise UpstreamUnavailable(str(e)) from e

        return self._parse_search_results(data)

    def get_cover_url(
        self,
        cover_id: int | None,
        size: str = COVER_SIZE_LISTING,
    ) -> str | None:
        """
        Get cover image URL.

        Args:
            cover_id: Open Library cover ID
            size: Size (S, M, L)

        Returns:
            Cover URL, or None when the book has no cover
        """
        if cover_id is None:
            return None
        return f"{self.covers_base}/b/id/{cover_id}-{size}.jpg"

    def get_work_url(self, book: BookSummary) -> str:
        """Open Library page for a book (the digital preview link)."""
        return f"{self.api_base}{book.key}"

    def _parse_search_results(self, data: Any) -> list[BookSummary]:
        """Parse search results from API response."""
        if not isinstance(data, dict):
            raise UpstreamUnavailable("Search response was not a JSON object")

        results = []
        for doc in (data.get("docs") or [])[: self.max_search_results]:
            if not isinstance(doc, dict):
                continue
            results.append(BookSummary.from_dict(doc))
        return results
