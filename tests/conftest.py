# tests/conftest.py - v2
"""Shared test fixtures for all unit and integration tests.

Provides a small Cargo-style project, in-memory caches, a fake toolchain and
helpers to build tasks whose commands are real Python one-liners.
"""

from __future__ import annotations

import asyncio
import sys

import pytest

from depforge.cache.artifact_cache import DependencyArtifactCache
from depforge.cache.memory_store import MemoryCacheStore
from depforge.cache.models import BuiltArtifact
from depforge.core.models import SourceSet
from depforge.source.filters import EverythingFilter
from depforge.tasks.models import TaskSpec

PLATFORM = "x86_64-linux"


# === FIXTURES: Sample data ===


@pytest.fixture
def cargo_project() -> SourceSet:
    """Minimal project: manifest, lock, one source file and a README."""
    return SourceSet.from_mapping({
        "Cargo.toml": '[package]\nname = "demo"\nversion = "0.1.0"\n',
        "Cargo.lock": "# lock v3\n[[package]]\nname = \"serde\"\n",
        "src/main.rs": 'fn main() { println!("hi"); }\n',
        "README.md": "# demo\n",
    })


@pytest.fixture
def memory_cache() -> DependencyArtifactCache:
    return DependencyArtifactCache(MemoryCacheStore())


class FakeToolchain:
    """Toolchain double counting builds; optionally slow or failing."""

    def __init__(
        self,
        artifact: bytes = b"compiled-deps",
        fail_with: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.artifact = artifact
        self.fail_with = fail_with
        self.delay = delay
        self.calls: list[tuple[SourceSet, str]] = []

    async def build_dependencies(self, source_set: SourceSet, platform: str) -> BuiltArtifact:
        self.calls.append((source_set, platform))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return BuiltArtifact(artifact=self.artifact, toolchain_version="fake 1.0", builder="fake")


@pytest.fixture
def fake_toolchain() -> FakeToolchain:
    return FakeToolchain()


def _python_task(
    name: str,
    code: str = "pass",
    consumes: bool = True,
    source_filter=None,
    platforms=None,
    env=None,
) -> TaskSpec:
    """TaskSpec running ``python -c code`` in the task workspace."""
    return TaskSpec(
        name=name,
        description=f"test task {name}",
        source_filter=source_filter or EverythingFilter(),
        consumes_dependency_cache=consumes,
        platforms=frozenset(platforms) if platforms else None,
        command=(sys.executable, "-c", code),
        env=env or {},
    )


@pytest.fixture
def make_task():
    """Factory fixture: ``make_task(name, code, consumes=..., ...)``."""
    return _python_task


@pytest.fixture
def toolchain_factory():
    """Factory fixture for FakeToolchain with custom behaviour."""
    return FakeToolchain

