"""
Data models for globallib.
"""

import base64
from dataclasses import dataclass, field
from typing import Any

# Open Library cover size tokens
COVER_SIZE_LISTING = "M"
COVER_SIZE_DETAIL = "L"


@dataclass(frozen=True)
class BookSummary:
    """A candidate book from Open Library search."""

    key: str  # e.g., "/works/OL893415W"
    title: str
    author_name: tuple[str, ...] = ()
    cover_i: int | None = None
    first_publish_year: int | None = None

    @property
    def first_author(self) -> str | None:
        return self.author_name[0] if self.author_name else None

    @property
    def author_line(self) -> str:
        """Authors for display, joined with commas."""
        return ", ".join(self.author_name) or "Unknown Author"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, in Open Library's search field names."""
        result: dict[str, Any] = {
            "key": self.key,
            "title": self.title,
        }
        if self.author_name:
            result["author_name"] = list(self.author_name)
        if self.cover_i is not None:
            result["cover_i"] = self.cover_i
        if self.first_publish_year is not None:
            result["first_publish_year"] = self.first_publish_year
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BookSummary":
        """Create from a search doc or a cached dictionary."""
        cover_i = data.get("cover_i")
        year = data.get("first_publish_year")
        authors = data.get("author_name") or ()
        if isinstance(authors, str):
            authors = (authors,)
        return cls(
            key=data.get("key", ""),
            title=data.get("title") or "Unknown",
            author_name=tuple(authors),
            cover_i=cover_i if isinstance(cover_i, int) else None,
            first_publish_year=year if isinstance(year, int) else None,
        )


@dataclass
class HoldingRecord:
    """A physical copy of a book at a specific library."""

    library: str
    address: str = ""
    call_number: str = ""
    availability: str = ""  # Free text, e.g. "Available", "Reference Only"
    directions: str = ""
    website: str | None = None

    @property
    def is_available(self) -> bool:
        return "available" in self.availability.lower()

    @property
    def location_label(self) -> str:
        """Short location: the first segment of the indoor directions."""
        return self.directions.split(",")[0].strip()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {
            "library": self.library,
            "address": self.address,
            "callNumber": self.call_number,
            "availability": self.availability,
            "directions": self.directions,
        }
        if self.website:
            result["website"] = self.website
        return result


@dataclass(frozen=True)
class Citation:
    """A web source the holdings inference consulted."""

    title: str
    uri: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "uri": self.uri}


@dataclass(frozen=True)
class ShelfImage:
    """A generated shelf guide image."""

    data: bytes = field(repr=False)
    mime_type: str = "image/png"

    @property
    def data_uri(self) -> str:
        """Directly displayable data URI."""
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "mime_type": self.mime_type,
            "size_bytes": len(self.data),
            "data_uri": self.data_uri,
        }
