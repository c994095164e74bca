# src/cache/artifact_cache.py - v1
"""Dependency artifact cache with single-flight builds.

``get_or_build`` pays the dependency compilation cost once per distinct
(fingerprint, platform) pair:

  - hit: the stored entry is returned and ``build_fn`` is not called
  - miss: ``build_fn`` runs, its artifact is stored, the entry is returned
  - concurrent misses on one key share the same in-flight build
  - a failed build raises BuildFailure and stores nothing, so the next call
    builds again

The in-flight build runs as its own task and callers await it through
``asyncio.shield``. A caller that gets cancelled stops waiting but the build
still completes and fills the cache. If the build task itself is cancelled,
every waiter sees the CancelledError and nothing is stored.

The single-flight map is per event loop; one cache object should be used
from one loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Union

from depforge.cache.base_cache_store import BaseCacheStore
from depforge.cache.fingerprint import artifact_digest
from depforge.cache.models import (
    ArtifactCacheEntry,
    ArtifactMetadata,
    BuiltArtifact,
    CacheStats,
    cache_key,
)
from depforge.core.errors import BuildFailure
from depforge.core.models import Fingerprint

logger = logging.getLogger(__name__)

BuildResult = Union[bytes, BuiltArtifact]
BuildFn = Callable[[], Union[BuildResult, Awaitable[BuildResult]]]


class DependencyArtifactCache:
    """Owns ArtifactCacheEntry instances; callers only borrow them.

    Args:
        store: Persistence backend. The cache never evicts from it.
    """

    def __init__(self, store: BaseCacheStore) -> None:
        self._store = store
        self._in_flight: dict[str, asyncio.Future[ArtifactCacheEntry]] = {}
        self._stats = CacheStats()

    @property
    def store(self) -> BaseCacheStore:
        return self._store

    @property
    def stats(self) -> CacheStats:
        """Snapshot of hit/miss/build counters."""
        return self._stats.model_copy()

    def in_flight(self, fingerprint: Fingerprint, platform: str) -> bool:
        """True while a build for this key is running."""
        pending = self._in_flight.get(cache_key(fingerprint, platform))
        return pending is not None and not pending.done()

    async def peek(
        self, fingerprint: Fingerprint, platform: str
    ) -> ArtifactCacheEntry | None:
        """Look up an entry without ever building."""
        entry = await self._store.get(cache_key(fingerprint, platform))
        return entry if _belongs_to(entry, fingerprint, platform) else None

    async def get_or_build(
        self,
        fingerprint: Fingerprint,
        platform: str,
        build_fn: BuildFn,
    ) -> ArtifactCacheEntry:
        """Return the entry for (fingerprint, platform), building it on a miss.

        Args:
            fingerprint: Dependency fingerprint (cache key part 1).
            platform: Platform tag (cache key part 2).
            build_fn: Zero-argument callable, sync or async, returning the
                artifact bytes or a BuiltArtifact.

        Raises:
            BuildFailure: If ``build_fn`` fails. Nothing is cached.
        """
        key = cache_key(fingerprint, platform)
        pending = self._in_flight.get(key)
        if pending is not None and pending.done():
            pending = None

        if pending is None:
            pending = asyncio.ensure_future(
                self._load_or_build(key, fingerprint, platform, build_fn)
            )
            self._in_flight[key] = pending
            pending.add_done_callback(
                lambda fut, k=key: self._release(k, fut)
            )
        else:
            self._stats.shared_waits += 1
            logger.debug("Waiting on in-flight dependency build %s", key)

        return await asyncio.shield(pending)

    def _release(self, key: str, fut: asyncio.Future[ArtifactCacheEntry]) -> None:
        if self._in_flight.get(key) is fut:
            del self._in_flight[key]
        if not fut.cancelled():
            # Mark the exception retrieved even if every waiter went away.
            fut.exception()

    async def _load_or_build(
        self,
        key: str,
        fingerprint: Fingerprint,
        platform: str,
        build_fn: BuildFn,
    ) -> ArtifactCacheEntry:
        entry = await self._store.get(key)
        if entry is not None and not _belongs_to(entry, fingerprint, platform):
            logger.warning(
                "Stored entry %s belongs to %s on %s, treating as a miss",
                key, entry.fingerprint.short, entry.platform,
            )
            entry = None
        if entry is not None:
            self._stats.hits += 1
            logger.info("Dependency cache hit %s on %s", fingerprint.short, platform)
            return entry

        self._stats.misses += 1
        self._stats.builds += 1
        logger.info(
            "Dependency cache miss %s on %s, building", fingerprint.short, platform
        )

        start_ns = time.monotonic_ns()
        try:
            result = build_fn()
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            logger.warning("Dependency build %s cancelled", key)
            raise
        except BuildFailure:
            self._stats.failures += 1
            raise
        except Exception as exc:
            self._stats.failures += 1
            raise BuildFailure(fingerprint.digest, platform, str(exc) or type(exc).__name__) from exc

        duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
        built = _as_built_artifact(result)
        if built is None:
            self._stats.failures += 1
            raise BuildFailure(
                fingerprint.digest,
                platform,
                f"toolchain returned {type(result).__name__}, expected bytes",
            )

        entry = ArtifactCacheEntry(
            key=key,
            fingerprint=fingerprint,
            platform=platform,
            artifact=built.artifact,
            metadata=ArtifactMetadata(
                toolchain_version=built.toolchain_version,
                builder=built.builder,
                build_duration_ms=duration_ms,
                artifact_sha256=artifact_digest(built.artifact),
                artifact_size=len(built.artifact),
            ),
        )
        await self._store.put(key, entry)
        logger.info(
            "Cached dependency artifact %s on %s (%d bytes, %dms)",
            fingerprint.short, platform, len(built.artifact), duration_ms,
        )
        return entry


def _belongs_to(
    entry: ArtifactCacheEntry | None, fingerprint: Fingerprint, platform: str
) -> bool:
    return (
        entry is not None
        and entry.platform == platform
        and entry.fingerprint == fingerprint
    )


def _as_built_artifact(result: object) -> BuiltArtifact | None:
    if isinstance(result, BuiltArtifact):
        return result
    if isinstance(result, (bytes, bytearray, memoryview)):
        return BuiltArtifact(artifact=bytes(result))
    return None
