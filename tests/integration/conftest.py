# tests/integration/conftest.py - v8
"""Shared fixtures for integration tests.

Everything runs locally: real subprocesses built from sys.executable, real
JSON / SQLite stores under tmp_path. No network, no containers.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from depforge.pipeline.toolchain import CommandToolchain

# Build script standing in for a compiler: writes one file per manifest
# into target/, and counts invocations in $BUILD_COUNTER when set.
FAKE_COMPILER = """
import os, pathlib
out = pathlib.Path("target/release/deps")
out.mkdir(parents=True)
(out / "libcore.rlib").write_text("core")
for manifest in sorted(pathlib.Path(".").rglob("*.toml")):
    (out / (manifest.parent.name or "root")).write_text(manifest.read_text())
counter = os.environ.get("BUILD_COUNTER")
if counter:
    with open(counter, "a") as fh:
        fh.write(os.environ["DEPFORGE_PLATFORM"] + "\\n")
"""


def pytest_collection_modifyitems(items):
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: local end-to-end tests")


@pytest.fixture
def build_counter(tmp_path, monkeypatch) -> Path:
    """File appended to by every fake compiler run."""
    path = tmp_path / "builds.log"
    monkeypatch.setenv("BUILD_COUNTER", str(path))
    return path


def build_count(counter: Path) -> int:
    return len(counter.read_text().splitlines()) if counter.exists() else 0


@pytest.fixture
def count_builds():
    return build_count


@pytest.fixture
def command_toolchain() -> CommandToolchain:
    return CommandToolchain(
        [sys.executable, "-c", FAKE_COMPILER],
        version_argv=[sys.executable, "--version"],
    )


@pytest.fixture
def project_dir(tmp_path) -> Path:
    """Cargo-style project on disk, with build output that must be ignored."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "Cargo.toml").write_text('[package]\nname = "demo"\n')
    (root / "Cargo.lock").write_text("version = 3\n")
    (root / "src" / "main.rs").write_text("fn main() {}\n")
    (root / "target" / "debug").mkdir(parents=True)
    (root / "target" / "debug" / "demo").write_bytes(b"\x7fELF")
    return root

