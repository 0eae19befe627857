"""
Configuration for globallib.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

PLUGIN_NAME = "datasette-globallib"
DEFAULT_LOCATION = "Major Libraries (Global)"


@dataclass
class OpenLibraryConfig:
    """Open Library API configuration."""

    api_base: str = "https://openlibrary.org"
    covers_base: str = "https://covers.openlibrary.org"
    timeout_seconds: float = 10.0
    max_search_results: int = 12


@dataclass
class GeminiConfig:
    """Gemini configuration for holdings inference and shelf images."""

    api_key: str | None = None
    api_key_env: str | None = "GEMINI_API_KEY"
    holdings_model: str = "gemini-2.5-flash"
    image_model: str = "gemini-2.5-flash-image"
    timeout_seconds: float = 60.0
    max_holdings: int = 3  # Advisory cap stated in the prompt

    def get_api_key(self) -> str | None:
        """Get API key from config or environment."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class CacheConfig:
    """Search result cache configuration."""

    db_path: Path = field(default_factory=lambda: Path("globallib.db"))
    namespace: str = "globallib_cache"
    max_entries: int | None = None  # None keeps every query


@dataclass
class NavigatorConfig:
    """Complete globallib configuration."""

    default_location: str = DEFAULT_LOCATION

    openlibrary: OpenLibraryConfig = field(default_factory=OpenLibraryConfig)
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NavigatorConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if "default_location" in data:
            config.default_location = data["default_location"]

        if "openlibrary" in data:
            ol = data["openlibrary"]
            config.openlibrary = OpenLibraryConfig(
                api_base=ol.get("api_base", config.openlibrary.api_base),
                covers_base=ol.get("covers_base", config.openlibrary.covers_base),
                timeout_seconds=ol.get("timeout_seconds", 10.0),
                max_search_results=ol.get("max_search_results", 12),
            )

        if "gemini" in data:
            gm = data["gemini"]
            config.gemini = GeminiConfig(
                api_key=gm.get("api_key"),
                api_key_env=gm.get("api_key_env", "GEMINI_API_KEY"),
                holdings_model=gm.get("holdings_model", "gemini-2.5-flash"),
                image_model=gm.get("image_model", "gemini-2.5-flash-image"),
                timeout_seconds=gm.get("timeout_seconds", 60.0),
                max_holdings=gm.get("max_holdings", 3),
            )

        if "cache" in data:
            cache = data["cache"]
            config.cache = CacheConfig(
                db_path=Path(cache.get("db_path", "globallib.db")),
                namespace=cache.get("namespace", "globallib_cache"),
                max_entries=cache.get("max_entries"),
            )

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "NavigatorConfig":
        """Load config from a YAML file (datasette.yaml format)."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # Look for config under plugins.datasette-globallib.navigator
        plugin_config = data.get("plugins", {}).get(PLUGIN_NAME, {})
        navigator_config = plugin_config.get("navigator", {})

        config = cls.from_dict(navigator_config)

        # Allow the flat plugin-level db path used by the Datasette routes
        if "cache" not in navigator_config and "cache_db_path" in plugin_config:
            config.cache.db_path = Path(plugin_config["cache_db_path"])

        return config

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for JSON serialization."""
        return {
            "default_location": self.default_location,
            "openlibrary": {
                "api_base": self.openlibrary.api_base,
                "covers_base": self.openlibrary.covers_base,
                "timeout_seconds": self.openlibrary.timeout_seconds,
                "max_search_results": self.openlibrary.max_search_results,
            },
            "gemini": {
                "holdings_model": self.gemini.holdings_model,
                "image_model": self.gemini.image_model,
                "timeout_seconds": self.gemini.timeout_seconds,
                "max_holdings": self.gemini.max_holdings,
            },
            "cache": {
                "db_path": str(self.cache.db_path),
                "namespace": self.cache.namespace,
                "max_entries": self.cache.max_entries,
            },
        }
