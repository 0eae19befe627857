"""
Pipeline controller for globallib.

Sequences search, book selection and shelf-guide requests, and owns the
session state those actions read and replace. Each selection is tagged
with an epoch; a holdings fetch that completes after a newer selection
(or a back/search) is discarded instead of being shown for the wrong book.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .cache import ResultCache
from .config import NavigatorConfig
from .errors import (
    InferenceUnavailable,
    MalformedHoldingsData,
    NavigatorError,
    NoMatches,
    UpstreamUnavailable,
    VisualizerFailure,
)
from .holdings import HoldingsInference
from .models import (
    COVER_SIZE_DETAIL,
    COVER_SIZE_LISTING,
    BookSummary,
    Citation,
    HoldingRecord,
    ShelfImage,
)
from .openlibrary import OpenLibraryClient
from .search import BookSearcher, SearchOutcome
from .shelf import ShelfVisualizer

logger = logging.getLogger(__name__)


class ViewState(str, Enum):
    """Top-level state of the session."""

    IDLE = "idle"
    SEARCHING = "searching"
    BROWSING_RESULTS = "browsing_results"
    VIEWING_DETAIL = "viewing_detail"


class HoldingsStatus(str, Enum):
    """Sub-state of the detail view."""

    FETCHING = "fetching_holdings"
    READY = "holdings_ready"
    EMPTY = "holdings_empty"
    ERROR = "holdings_error"


@dataclass
class SessionState:
    """Everything the pipeline shows for one user session."""

    location: str
    query: str = ""
    view: ViewState = ViewState.IDLE
    books: list[BookSummary] = field(default_factory=list)
    selected_book: BookSummary | None = None
    holdings_status: HoldingsStatus | None = None
    holdings: list[HoldingRecord] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)
    shelf_images: dict[int, ShelfImage] = field(default_factory=dict)
    condition: NavigatorError | None = None
    search_epoch: int = 0
    selection_epoch: int = 0

    @property
    def searching(self) -> bool:
        return self.view == ViewState.SEARCHING

    @property
    def holdings_loading(self) -> bool:
        return self.holdings_status == HoldingsStatus.FETCHING

    @property
    def error_message(self) -> str | None:
        """Banner text, if the last action failed."""
        if self.condition is not None and self.condition.banner:
            return self.condition.user_message
        return None

    @property
    def notice(self) -> str | None:
        """Quiet guidance, e.g. after a search with no matches."""
        if self.condition is not None and not self.condition.banner:
            return self.condition.user_message
        return None

    def clear_enrichment(self) -> None:
        """Drop holdings, citations and shelf images of the current selection."""
        self.holdings = []
        self.citations = []
        # A fresh dict, so late shelf images land in the discarded one
        self.shelf_images = {}


class PipelineController:
    """Drives the search -> select -> shelf-view flow."""

    def __init__(
        self,
        config: NavigatorConfig,
        searcher: BookSearcher | None = None,
        inference: HoldingsInference | None = None,
        visualizer: ShelfVisualizer | None = None,
    ):
        self.config = config
        self.searcher = searcher or self._build_searcher(config)
        self.inference = inference or HoldingsInference(config.gemini)
        self.visualizer = visualizer or ShelfVisualizer(config.gemini)
        self.state = SessionState(location=config.default_location)

    @staticmethod
    def _build_searcher(config: NavigatorConfig) -> BookSearcher:
        client = OpenLibraryClient(
            timeout_seconds=config.openlibrary.timeout_seconds,
            max_search_results=config.openlibrary.max_search_results,
            api_base=config.openlibrary.api_base,
            covers_base=config.openlibrary.covers_base,
        )
        cache = ResultCache(
            config.cache.db_path,
            namespace=config.cache.namespace,
            max_entries=config.cache.max_entries,
        )
        return BookSearcher(client, cache)

    # -------------------------------------------------------------------------
    # External signals
    # -------------------------------------------------------------------------

    def set_location(self, latitude: float, longitude: float) -> None:
        """Use a geolocation fix as the holdings location hint."""
        self.state.location = f"{latitude}, {longitude}"

    def clear_location(self) -> None:
        """Geolocation denied or unavailable: fall back to the default."""
        self.state.location = self.config.default_location

    async def submit_transcript(self, transcript: str) -> None:
        """Search with a finished voice transcript, exactly as if typed."""
        await self.search(transcript)

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def search(self, query: str) -> None:
        """Search for books; empty queries are ignored."""
        if not query.strip():
            return

        state = self.state
        state.query = query
        state.search_epoch += 1
        epoch = state.search_epoch

        self._end_selection()
        state.condition = None

        cached = self.searcher.lookup_cached(query)
        if cached is not None:
            self._apply_search(cached)
            return

        state.view = ViewState.SEARCHING
        try:
            outcome = await self.searcher.fetch(query)
        except UpstreamUnavailable as e:
            if epoch != state.search_epoch:
                return
            logger.warning(f"Search for {query!r} failed: {e}")
            if state.view == ViewState.VIEWING_DETAIL:
                return
            # Keep the previous result list on screen
            state.condition = e
            state.view = ViewState.BROWSING_RESULTS
            return

        if epoch != state.search_epoch:
            logger.debug(f"Discarding stale search results for {query!r}")
            return
        if state.view == ViewState.VIEWING_DETAIL:
            # A book was selected while the search ran; results wait behind it
            state.books = outcome.books
            return
        self._apply_search(outcome)

    def _apply_search(self, outcome: SearchOutcome) -> None:
        state = self.state
        state.books = outcome.books
        state.view = ViewState.BROWSING_RESULTS
        if not outcome.found:
            state.condition = NoMatches(outcome.query)

    async def select_book(self, book: BookSummary) -> None:
        """Show a book's detail view and fetch its holdings."""
        state = self.state
        state.selection_epoch += 1
        epoch = state.selection_epoch

        state.selected_book = book
        state.view = ViewState.VIEWING_DETAIL
        state.holdings_status = HoldingsStatus.FETCHING
        state.clear_enrichment()
        state.condition = None

        try:
            result = await self.inference.fetch_holdings(book, state.location)
        except (InferenceUnavailable, MalformedHoldingsData) as e:
            if epoch != state.selection_epoch:
                return
            state.holdings_status = HoldingsStatus.ERROR
            state.condition = e
            return

        if epoch != state.selection_epoch:
            logger.info(f"Discarding late holdings for {book.key}")
            return

        state.holdings = result.holdings
        state.citations = result.citations
        state.holdings_status = (
            HoldingsStatus.EMPTY if result.empty else HoldingsStatus.READY
        )

    def back(self) -> None:
        """Return from the detail view to the result list."""
        if self.state.view != ViewState.VIEWING_DETAIL:
            return
        self._end_selection()
        self.state.condition = None
        self.state.view = ViewState.BROWSING_RESULTS

    def _end_selection(self) -> None:
        state = self.state
        state.selection_epoch += 1
        state.selected_book = None
        state.holdings_status = None
        state.clear_enrichment()

    async def request_shelf_view(self, index: int) -> ShelfImage | None:
        """
        Generate the shelf guide for the holding at ``index``.

        Returns the image, or None if the request was turned away or failed.

        Raises:
            IndexError: if no holding exists at ``index``
        """
        state = self.state
        if state.holdings_status != HoldingsStatus.READY:
            return None
        if not 0 <= index < len(state.holdings):
            raise IndexError(f"No holding at index {index}")

        holding = state.holdings[index]
        try:
            return await self.visualizer.generate(
                holding.library,
                holding.call_number,
                index,
                state.shelf_images,
            )
        except VisualizerFailure as e:
            # Secondary enrichment: no banner, the button stays available
            logger.info(f"Shelf view for holding {index} unavailable: {e}")
            return None

    # -------------------------------------------------------------------------
    # Presentation
    # -------------------------------------------------------------------------

    def find_book(self, key: str) -> BookSummary | None:
        """Find a book in the current result list by its key."""
        for book in self.state.books:
            if book.key == key:
                return book
        return None

    def _book_dict(self, book: BookSummary, cover_size: str) -> dict[str, Any]:
        client = self.searcher.client
        data = book.to_dict()
        data["author_line"] = book.author_line
        data["cover_url"] = client.get_cover_url(book.cover_i, cover_size)
        data["work_url"] = client.get_work_url(book)
        return data

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of the session for a presentation layer."""
        state = self.state
        holdings = []
        for index, holding in enumerate(state.holdings):
            item = holding.to_dict()
            item["is_available"] = holding.is_available
            item["location_label"] = holding.location_label
            image = state.shelf_images.get(index)
            item["shelf_image"] = image.data_uri if image else None
            holdings.append(item)

        return {
            "view": state.view.value,
            "query": state.query,
            "location": state.location,
            "searching": state.searching,
            "books": [self._book_dict(b, COVER_SIZE_LISTING) for b in state.books],
            "selected_book": (
                self._book_dict(state.selected_book, COVER_SIZE_DETAIL)
                if state.selected_book
                else None
            ),
            "holdings_status": (
                state.holdings_status.value if state.holdings_status else None
            ),
            "holdings": holdings,
            "citations": [c.to_dict() for c in state.citations],
            "shelf_loading_index": self.visualizer.pending_index,
            "error": state.error_message,
            "notice": state.notice,
            "condition": state.condition.kind if state.condition else None,
        }
