"""
Holdings inference via Gemini with Google Search grounding.

Asks the model where physical copies of a book can be found near a
location, then recovers structured holdings from its reply along with the
web sources it cited.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from google import genai
from google.genai import types

from .config import GeminiConfig
from .errors import InferenceUnavailable, MalformedHoldingsData
from .extract import extract_holdings
from .models import BookSummary, Citation, HoldingRecord

logger = logging.getLogger(__name__)

HOLDINGS_PROMPT = """Find physical library holdings for the book "{title}" by {author}.
Prioritize major libraries like NYPL, British Library, Library of Congress, or major public libraries near {location}.

Return a JSON array of objects with these keys:
- "library" (Name of library)
- "address" (Full street address)
- "callNumber" (Specific shelf location/Call Number, e.g., 'J F ROWLING', 'LCCN 2020')
- "availability" (e.g., 'Available', 'Reference Only', 'Checked Out')
- "directions" (Specific INDOOR walking directions. Mention the Floor, Room, or Section name if known. e.g. "3rd Floor, Rose Reading Room, Aisle 4")
- "website" (URL to reserve or view catalog if found)

Strictly output JSON only in a ```json code block. Limit to top {limit} relevant libraries."""


def build_holdings_prompt(book: BookSummary, location: str, limit: int = 3) -> str:
    """Build the holdings instruction for a book and location hint."""
    return HOLDINGS_PROMPT.format(
        title=book.title,
        author=book.first_author or "Unknown",
        location=location,
        limit=limit,
    )


def extract_citations(response: Any) -> list[Citation]:
    """
    Pull grounding sources off a response.

    Chunks without both a title and a URI are dropped.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    citations = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        title = getattr(web, "title", None)
        uri = getattr(web, "uri", None)
        if title and uri:
            citations.append(Citation(title=title, uri=uri))
    return citations


@dataclass
class HoldingsResult:
    """Holdings for one book plus the sources behind them."""

    holdings: list[HoldingRecord] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.holdings

    def to_dict(self) -> dict[str, Any]:
        return {
            "holdings": [h.to_dict() for h in self.holdings],
            "citations": [c.to_dict() for c in self.citations],
        }


class HoldingsInference:
    """Grounded Gemini lookup of nearby physical holdings."""

    def __init__(self, config: GeminiConfig, client: genai.Client | None = None):
        """
        Args:
            config: Gemini settings (model, timeout, API key source)
            client: Pre-built genai client; created lazily when omitted
        """
        self.config = config
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.config.get_api_key())
        return self._client

    async def fetch_holdings(
        self,
        book: BookSummary,
        location_hint: str,
    ) -> HoldingsResult:
        """
        Ask for holdings of a book near a location.

        Raises:
            InferenceUnavailable: if the model call could not complete
            MalformedHoldingsData: if the reply held no decodable holdings
        """
        prompt = build_holdings_prompt(book, location_hint, self.config.max_holdings)
        logger.info(f"Fetching holdings for {book.key} near {location_hint!r}")

        try:
            client = self._get_client()
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self.config.holdings_model,
                    contents=prompt,
                    config=types.GenerateContentConfig(
                        tools=[types.Tool(google_search=types.GoogleSearch())],
                    ),
                ),
                timeout=self.config.timeout_seconds,
            )
        except TimeoutError as e:
            logger.warning(
                f"Holdings inference for {book.key} timed out after "
                f"{self.config.timeout_seconds}s"
            )
            raise InferenceUnavailable("Timed out") from e
        except Exception as e:
            logger.exception(f"Holdings inference failed for {book.key}")
            raise InferenceUnavailable(str(e)) from e

        citations = extract_citations(response)

        try:
            holdings = extract_holdings(getattr(response, "text", None))
        except MalformedHoldingsData:
            logger.warning(f"Could not parse holdings reply for {book.key}")
            raise

        logger.info(
            f"Holdings for {book.key}: {len(holdings)} libraries, "
            f"{len(citations)} sources"
        )
        return HoldingsResult(holdings=holdings, citations=citations)
