# src/cache/cache_factory.py - v3
"""Factory for cache store instantiation."""

from __future__ import annotations

from depforge.cache.base_cache_store import BaseCacheStore
from depforge.config.settings import Settings


def create_cache_store(settings: Settings | None = None) -> BaseCacheStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to an in-memory store.

    Returns:
        Configured BaseCacheStore implementation.
    """
    if settings is None or settings.cache_backend == "memory":
        from depforge.cache.memory_store import MemoryCacheStore
        return MemoryCacheStore()

    backend = settings.cache_backend
    if backend == "json":
        from depforge.cache.json_store import JsonCacheStore
        return JsonCacheStore(cache_root=settings.cache_root)

    if backend == "sqlite":
        from depforge.cache.sqlite_store import SqliteCacheStore
        return SqliteCacheStore(db_path=settings.cache_root / "depforge_cache.db")

    raise ValueError(f"Unsupported cache backend: {backend!r}")
