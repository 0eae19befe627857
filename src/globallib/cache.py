"""
Durable search result cache.

Maps a normalized (case-folded) query to the books a prior search returned.
The whole mapping is stored as JSON under one namespaced key in the
``kv_store`` table, read defensively and written back wholesale.
"""

import json
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .migrations import run_migrations
from .models import BookSummary

logger = logging.getLogger(__name__)


def normalize_query(query: str) -> str:
    """Canonical cache key for a query."""
    return query.casefold()


class ResultCache:
    """Process-local, durable query -> results mapping."""

    def __init__(
        self,
        db_path: Path,
        namespace: str = "globallib_cache",
        max_entries: int | None = None,
    ):
        self.db_path = db_path
        self.namespace = namespace
        self.max_entries = max_entries
        self._schema_ready = False

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly
        return sqlite3.connect(self.db_path, isolation_level=None)

    def _ensure_schema(self) -> None:
        if not self._schema_ready:
            run_migrations(self.db_path, verbose=False)
            self._schema_ready = True

    def _read_mapping(self, conn: sqlite3.Connection) -> dict[str, Any]:
        """Read the cached mapping; anything unreadable counts as empty."""
        row = conn.execute(
            "SELECT value FROM kv_store WHERE key = ?", (self.namespace,)
        ).fetchone()
        if row is None:
            return {}
        try:
            mapping = json.loads(row[0])
        except (TypeError, ValueError):
            logger.warning(f"Discarding unreadable cache under {self.namespace!r}")
            return {}
        if not isinstance(mapping, dict):
            logger.warning(f"Discarding non-object cache under {self.namespace!r}")
            return {}
        return mapping

    def load(self) -> dict[str, Any]:
        """Return the raw cached mapping (empty when missing or corrupt)."""
        if not self.db_path.exists():
            return {}
        try:
            conn = self._connect()
            try:
                return self._read_mapping(conn)
            finally:
                conn.close()
        except sqlite3.DatabaseError as e:
            logger.warning(f"Cache unreadable at {self.db_path}: {e}")
            return {}

    def lookup(self, query: str) -> list[BookSummary] | None:
        """
        Look up cached results for a query.

        Returns:
            The cached books (possibly empty), or None on a miss
        """
        key = normalize_query(query)
        entry = self.load().get(key)
        if not isinstance(entry, list):
            return None
        try:
            return [BookSummary.from_dict(doc) for doc in entry]
        except (AttributeError, TypeError):
            logger.warning(f"Ignoring malformed cache entry for {key!r}")
            return None

    def store(self, query: str, results: list[BookSummary]) -> None:
        """Write results for a query, overwriting any previous entry."""
        key = normalize_query(query)
        try:
            self._ensure_schema()
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    mapping = self._read_mapping(conn)
                    # Re-inserting moves the key to the newest position
                    mapping.pop(key, None)
                    mapping[key] = [book.to_dict() for book in results]
                    self._evict(mapping)
                    conn.execute(
                        """
                        INSERT INTO kv_store (key, value, updated_ts)
                        VALUES (?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                            value = excluded.value,
                            updated_ts = excluded.updated_ts
                        """,
                        (
                            self.namespace,
                            json.dumps(mapping),
                            datetime.now(UTC).isoformat(),
                        ),
                    )
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
            finally:
                conn.close()
        except sqlite3.DatabaseError as e:
            logger.warning(f"Could not write cache entry for {key!r}: {e}")
            return

        logger.debug(f"Cached {len(results)} result(s) for {key!r}")

    def _evict(self, mapping: dict[str, Any]) -> None:
        if self.max_entries is None:
            return
        while len(mapping) > self.max_entries:
            oldest = next(iter(mapping))
            del mapping[oldest]
            logger.debug(f"Evicted cache entry {oldest!r}")

    def clear(self) -> None:
        """Drop every cached query."""
        if not self.db_path.exists():
            return
        try:
            conn = self._connect()
            try:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (self.namespace,))
            finally:
                conn.close()
        except sqlite3.DatabaseError as e:
            logger.warning(f"Could not clear cache: {e}")
