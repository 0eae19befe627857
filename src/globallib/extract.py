"""
Recover holdings JSON from free-form model output.

The model is asked to reply with a fenced ```json block, but nothing
guarantees it will. Candidates are tried in priority order:

1. A fence labelled ``json``
2. Any fence
3. The whole text

Whichever candidate is selected must decode to a JSON array of objects;
otherwise MalformedHoldingsData is raised. An empty array is a valid,
successful "no holdings" answer.
"""

import json
import logging
import re
from typing import Any

from .errors import MalformedHoldingsData
from .models import HoldingRecord

logger = logging.getLogger(__name__)

JSON_FENCE = re.compile(r"```json[ \t]*\r?\n(.*?)```", re.DOTALL | re.IGNORECASE)
ANY_FENCE = re.compile(r"```(.*?)```", re.DOTALL)
# A bare language tag on the fence's opening line, e.g. "```javascript"
FENCE_LABEL = re.compile(r"^[A-Za-z][\w+-]*[ \t]*\r?\n")

# Accepted spellings for each field, first match wins
FIELD_ALIASES = {
    "library": ("library", "library_name", "name"),
    "address": ("address",),
    "call_number": ("callNumber", "call_number", "callnumber"),
    "availability": ("availability", "status"),
    "directions": ("directions", "indoor_directions"),
    "website": ("website", "url"),
}


def select_payload(raw_text: str) -> str:
    """Pick the candidate JSON text from raw model output."""
    match = JSON_FENCE.search(raw_text)
    if match:
        return match.group(1)

    match = ANY_FENCE.search(raw_text)
    if match:
        return FENCE_LABEL.sub("", match.group(1), count=1)

    return raw_text


def extract_holdings(raw_text: str | None) -> list[HoldingRecord]:
    """
    Decode holdings from raw model output.

    Raises:
        MalformedHoldingsData: if no JSON array of objects can be recovered
    """
    if not raw_text or not raw_text.strip():
        raise MalformedHoldingsData("Empty response text")

    payload = select_payload(raw_text)
    try:
        decoded = json.loads(payload)
    except ValueError as e:
        logger.warning(f"Holdings payload is not valid JSON: {e}")
        raise MalformedHoldingsData(f"Invalid JSON: {e}") from e

    if not isinstance(decoded, list):
        raise MalformedHoldingsData(
            f"Expected a JSON array, got {type(decoded).__name__}"
        )

    holdings = []
    for position, item in enumerate(decoded):
        if not isinstance(item, dict):
            raise MalformedHoldingsData(f"Holding {position} is not an object")
        holdings.append(project_holding(item))
    return holdings


def _text_field(item: dict[str, Any], name: str) -> str | None:
    for alias in FIELD_ALIASES[name]:
        value = item.get(alias)
        if value is None:
            continue
        text = value if isinstance(value, str) else str(value)
        return text.strip()
    return None


def project_holding(item: dict[str, Any]) -> HoldingRecord:
    """Project a loosely shaped holding object onto a HoldingRecord."""
    website = _text_field(item, "website")
    return HoldingRecord(
        library=_text_field(item, "library") or "",
        address=_text_field(item, "address") or "",
        call_number=_text_field(item, "call_number") or "",
        availability=_text_field(item, "availability") or "",
        directions=_text_field(item, "directions") or "",
        # Missing or blank website means "no link"
        website=website or None,
    )
