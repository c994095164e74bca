# tests/integration/cache/test_int_cache_stores.py - v3
"""Integration tests for cache backends: JSON + SQLite behind DependencyArtifactCache.

No external services required.
Coverage targets: json_store.py, sqlite_store.py, cache_factory.py,
fingerprint.py, artifact_cache.py
"""

from __future__ import annotations

import asyncio

import pytest

from depforge.cache.artifact_cache import DependencyArtifactCache
from depforge.cache.cache_factory import create_cache_store
from depforge.cache.fingerprint import compute_fingerprint
from depforge.config.settings import Settings
from depforge.core.errors import BuildFailure
from depforge.core.models import SourceSet


def _fingerprint(lock: str = "v1"):
    source = SourceSet.from_mapping({"Cargo.toml": "[package]", "Cargo.lock": lock})
    return compute_fingerprint(source, lock.encode())


@pytest.fixture(params=["json", "sqlite"])
def settings(request, tmp_path) -> Settings:
    return Settings(_env_file=None, cache_backend=request.param, cache_root=tmp_path / "cache")


class TestPersistentArtifactCache:
    @pytest.mark.asyncio
    async def test_entry_survives_restart(self, settings):
        fp = _fingerprint()
        store = create_cache_store(settings)
        built = await DependencyArtifactCache(store).get_or_build(fp, "x86_64-linux", lambda: b"deps-v1")
        store.close()

        reopened = create_cache_store(settings)
        try:
            calls = []
            entry = await DependencyArtifactCache(reopened).get_or_build(
                fp, "x86_64-linux", lambda: calls.append(1) or b"rebuilt",
            )
            assert calls == []
            assert entry.artifact == b"deps-v1"
            assert entry.metadata == built.metadata
            assert entry.fingerprint == fp
        finally:
            reopened.close()

    @pytest.mark.asyncio
    async def test_failed_build_leaves_no_trace(self, settings):
        store = create_cache_store(settings)
        try:
            cache = DependencyArtifactCache(store)

            def broken():
                raise RuntimeError("registry unreachable")

            with pytest.raises(BuildFailure):
                await cache.get_or_build(_fingerprint(), "x86_64-linux", broken)
            assert await store.list_keys() == []
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_concurrent_misses_single_write(self, settings):
        store = create_cache_store(settings)
        try:
            cache = DependencyArtifactCache(store)
            calls = 0

            async def slow_build():
                nonlocal calls
                calls += 1
                await asyncio.sleep(0.05)
                return b"deps"

            fp = _fingerprint()
            entries = await asyncio.gather(
                *(cache.get_or_build(fp, "x86_64-linux", slow_build) for _ in range(8))
            )
            assert calls == 1
            assert len({id(e) for e in entries}) == 1
            assert len(await store.list_keys()) == 1
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_lock_versions_coexist(self, settings):
        store = create_cache_store(settings)
        try:
            cache = DependencyArtifactCache(store)
            await cache.get_or_build(_fingerprint("v1"), "x86_64-linux", lambda: b"one")
            await cache.get_or_build(_fingerprint("v2"), "x86_64-linux", lambda: b"two")
            assert (await cache.peek(_fingerprint("v1"), "x86_64-linux")).artifact == b"one"
            assert (await cache.peek(_fingerprint("v2"), "x86_64-linux")).artifact == b"two"
        finally:
            store.close()
