# src/cache/json_store.py - v2
"""File-based cache store (default CACHE_BACKEND=json).

Each entry is two files under CACHE_ROOT: ``<key>.blob`` holding the
artifact and ``<key>.json`` holding everything else. The header is renamed
into place last, so a header on disk always means a complete entry.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from depforge.cache.base_cache_store import BaseCacheStore
from depforge.cache.models import ArtifactCacheEntry

logger = logging.getLogger(__name__)


class JsonCacheStore(BaseCacheStore):
    """File-based cache store using a JSON header plus a raw blob per entry."""

    def __init__(self, cache_root: Path | str) -> None:
        self._root = Path(cache_root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    async def get(self, key: str) -> ArtifactCacheEntry | None:
        """Retrieve cache entry by key."""
        header_path, blob_path = self._entry_paths(key)
        if not header_path.exists():
            return None
        try:
            header = header_path.read_text(encoding="utf-8")
            artifact = blob_path.read_bytes()
            return ArtifactCacheEntry.from_header(header, artifact)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Failed to read cache entry %s: %s", key, e)
            return None

    async def put(self, key: str, entry: ArtifactCacheEntry) -> None:
        """Store a cache entry; an existing entry is never overwritten."""
        header_path, blob_path = self._entry_paths(key)
        if header_path.exists():
            logger.warning("Cache entry %s already exists, keeping original", key)
            return
        _atomic_write(blob_path, entry.artifact)
        _atomic_write(header_path, entry.header_json().encode("utf-8"))
        logger.debug("Wrote cache entry %s (%d bytes)", key, len(entry.artifact))

    async def delete(self, key: str) -> None:
        """Remove a cache entry."""
        for path in self._entry_paths(key):
            if path.exists():
                path.unlink()

    async def list_keys(self) -> list[str]:
        """List keys of complete entries."""
        if not self._root.is_dir():
            return []
        return sorted(p.stem for p in self._root.glob("*.json"))

    def _entry_paths(self, key: str) -> tuple[Path, Path]:
        """Return (header, blob) paths for a cache key."""
        safe_key = key.replace("/", "_").replace("\\", "_")
        return self._root / f"{safe_key}.json", self._root / f"{safe_key}.blob"


def _atomic_write(path: Path, data: bytes) -> None:
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    tmp.write_bytes(data)
    os.replace(tmp, path)
