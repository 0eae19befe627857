"""
AI shelf guide images.

Generates a photorealistic view of the aisle where a holding should be
shelved. At most one generation is in flight at a time across the whole
process; callers arriving while one is pending are turned away, not queued.
"""

import asyncio
import base64
import binascii
import logging
from typing import Any

from google import genai
from google.genai import types

from .config import GeminiConfig
from .errors import VisualizerFailure
from .models import ShelfImage

logger = logging.getLogger(__name__)

SHELF_PROMPT = """A photorealistic wide shot of a library aisle inside {library}.
The view focuses on a specific bookshelf containing books with call number "{call_number}".
The scene should show the interior of this specific library (e.g. if NYPL, show classical architecture; if modern, show metal shelves).
Highlight or focus on the middle shelf where the book would be.
Warm library lighting, academic atmosphere. No text overlay."""

DEFAULT_IMAGE_MIME = "image/png"


def build_shelf_prompt(library: str, call_number: str) -> str:
    return SHELF_PROMPT.format(library=library, call_number=call_number)


def first_inline_image(response: Any) -> ShelfImage | None:
    """Decode the first usable inline image part of a response."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)

    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None)
        if not data:
            continue
        if isinstance(data, str):
            # Some transports hand back the base64 text undecoded
            try:
                data = base64.b64decode(data, validate=True)
            except (binascii.Error, ValueError):
                logger.debug("Skipping inline part with undecodable base64")
                continue
        mime_type = getattr(inline, "mime_type", None) or DEFAULT_IMAGE_MIME
        return ShelfImage(data=data, mime_type=mime_type)
    return None


class ShelfVisualizer:
    """Single-flight, memoizing shelf image generator."""

    def __init__(self, config: GeminiConfig, client: genai.Client | None = None):
        self.config = config
        self._client = client
        # Index of the holding being generated; None when nothing is in flight
        self.pending_index: int | None = None

    @property
    def in_flight(self) -> bool:
        return self.pending_index is not None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.config.get_api_key())
        return self._client

    async def generate(
        self,
        library: str,
        call_number: str,
        index: int,
        memo: dict[int, ShelfImage],
    ) -> ShelfImage | None:
        """
        Generate and memoize a shelf image for the holding at ``index``.

        Returns the memoized image if one already exists, or None without
        calling upstream if another generation is pending.

        Raises:
            VisualizerFailure: if the call failed or returned no image
        """
        if index in memo:
            return memo[index]
        if self.in_flight:
            logger.debug(
                f"Shelf image for {index} ignored; {self.pending_index} is pending"
            )
            return None

        self.pending_index = index
        try:
            client = self._get_client()
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self.config.image_model,
                    contents=types.Content(
                        role="user",
                        parts=[types.Part(text=build_shelf_prompt(library, call_number))],
                    ),
                ),
                timeout=self.config.timeout_seconds,
            )
            image = first_inline_image(response)
        except Exception as e:
            logger.warning(f"Failed to generate shelf image for {library!r}: {e}")
            raise VisualizerFailure(str(e)) from e
        finally:
            self.pending_index = None

        if image is None:
            logger.warning(f"No image returned for {library!r} ({call_number})")
            raise VisualizerFailure("Response held no inline image")

        memo[index] = image
        logger.info(f"Shelf image ready for {library!r} ({len(image.data)} bytes)")
        return image
