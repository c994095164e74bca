# src/cache/sqlite_store.py - v2
"""SQLite-based cache store (CACHE_BACKEND=sqlite).

Uses stdlib sqlite3, one row per entry with the artifact in a BLOB column.
Better suited than the JSON store when many fingerprints accumulate.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from pydantic import ValidationError

from depforge.cache.base_cache_store import BaseCacheStore
from depforge.cache.models import ArtifactCacheEntry

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS artifact_entries (
    key TEXT PRIMARY KEY,
    header TEXT NOT NULL,
    artifact BLOB NOT NULL,
    fingerprint TEXT NOT NULL,
    platform TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_fingerprint ON artifact_entries(fingerprint);
"""


class SqliteCacheStore(BaseCacheStore):
    """SQLite-backed cache store."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    async def get(self, key: str) -> ArtifactCacheEntry | None:
        """Retrieve cache entry by key."""
        cursor = self._conn.execute(
            "SELECT header, artifact FROM artifact_entries WHERE key = ?", (key,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        try:
            return ArtifactCacheEntry.from_header(row[0], bytes(row[1]))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Failed to deserialize cache entry %s: %s", key, e)
            return None

    async def put(self, key: str, entry: ArtifactCacheEntry) -> None:
        """Store a cache entry; an existing key is left untouched."""
        cursor = self._conn.execute(
            """INSERT OR IGNORE INTO artifact_entries
               (key, header, artifact, fingerprint, platform)
               VALUES (?, ?, ?, ?, ?)""",
            (
                key,
                entry.header_json(),
                sqlite3.Binary(entry.artifact),
                entry.fingerprint.digest,
                entry.platform,
            ),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            logger.warning("Cache entry %s already exists, keeping original", key)

    async def delete(self, key: str) -> None:
        """Remove a cache entry."""
        self._conn.execute("DELETE FROM artifact_entries WHERE key = ?", (key,))
        self._conn.commit()

    async def list_keys(self) -> list[str]:
        cursor = self._conn.execute("SELECT key FROM artifact_entries ORDER BY key")
        return [row[0] for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
