# src/cache/memory_store.py - v1
"""In-process cache store (CACHE_BACKEND=memory), lives as long as the object."""

from __future__ import annotations

import logging

from depforge.cache.base_cache_store import BaseCacheStore
from depforge.cache.models import ArtifactCacheEntry

logger = logging.getLogger(__name__)


class MemoryCacheStore(BaseCacheStore):
    """Dictionary-backed store, mainly for single runs and tests."""

    def __init__(self) -> None:
        self._entries: dict[str, ArtifactCacheEntry] = {}

    async def get(self, key: str) -> ArtifactCacheEntry | None:
        return self._entries.get(key)

    async def put(self, key: str, entry: ArtifactCacheEntry) -> None:
        if key in self._entries:
            logger.warning("Cache entry %s already exists, keeping original", key)
            return
        self._entries[key] = entry

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def list_keys(self) -> list[str]:
        return sorted(self._entries)
