# src/cache/base_cache_store.py - v2
"""Abstract cache store interface.

Stores persist ArtifactCacheEntry objects by key. Entries are write-once:
``put`` on an existing key leaves the stored entry untouched. Eviction is
left to whatever owns the underlying storage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from depforge.cache.models import ArtifactCacheEntry


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends."""

    @abstractmethod
    async def get(self, key: str) -> ArtifactCacheEntry | None:
        """Retrieve an entry by key, or None on miss."""

    @abstractmethod
    async def put(self, key: str, entry: ArtifactCacheEntry) -> None:
        """Store an entry unless the key is already present."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove an entry."""

    @abstractmethod
    async def list_keys(self) -> list[str]:
        """List all stored keys, sorted."""

    async def contains(self, key: str) -> bool:
        """True if an entry exists for ``key``."""
        return await self.get(key) is not None

    def close(self) -> None:
        """Release backend resources. No-op by default."""
