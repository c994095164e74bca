# src/config/tasks.py - v1
"""Declarative task catalog.

DEFAULT_TASKS is the built-in catalog for a Cargo project: build, lint, docs,
format check, dependency audit, tests and coverage. A TOML file with a
``[[tasks]]`` array can replace it (TASKS_FILE).
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from pydantic import ValidationError

from depforge.core.errors import FilterError
from depforge.source.filters import (
    AnyOfFilter,
    ExtensionFilter,
    FilenameFilter,
    GlobFilter,
)
from depforge.tasks.models import TaskSpec
from depforge.tasks.registry import RegistryError, TaskRegistry

logger = logging.getLogger(__name__)

# Rust sources, Cargo manifests and lock, and cargo config.
CARGO_SOURCES = AnyOfFilter(
    predicates=(
        ExtensionFilter(extensions=(".rs", ".toml")),
        FilenameFilter(names=("Cargo.lock",)),
        GlobFilter(patterns=(".cargo/config", "*/.cargo/config")),
    )
)

CARGO_MANIFESTS = FilenameFilter(names=("Cargo.toml", "Cargo.lock"))

# Tasks that reuse compiled dependencies point cargo at the unpacked artifact.
_CARGO_ENV = {"CARGO_TARGET_DIR": "{artifact_dir}"}

DEFAULT_TASKS: tuple[TaskSpec, ...] = (
    TaskSpec(
        name="build",
        description="Build the crate against the cached dependencies",
        source_filter=CARGO_SOURCES,
        consumes_dependency_cache=True,
        command=("cargo", "build", "--release", "--locked"),
        env=_CARGO_ENV,
        tools=("cargo", "rustc"),
    ),
    TaskSpec(
        name="clippy",
        description="Lint all targets and features, denying warnings",
        source_filter=CARGO_SOURCES,
        consumes_dependency_cache=True,
        command=(
            "cargo", "clippy", "--all-targets", "--all-features",
            "--", "--deny", "warnings",
        ),
        env=_CARGO_ENV,
        tools=("cargo", "clippy-driver"),
    ),
    TaskSpec(
        name="doc",
        description="Generate API documentation",
        source_filter=CARGO_SOURCES,
        consumes_dependency_cache=True,
        command=("cargo", "doc", "--no-deps"),
        env=_CARGO_ENV,
        tools=("cargo", "rustdoc"),
    ),
    TaskSpec(
        name="fmt",
        description="Check formatting",
        source_filter=CARGO_SOURCES,
        consumes_dependency_cache=False,
        command=("cargo", "fmt", "--all", "--check"),
        tools=("cargo", "rustfmt"),
    ),
    TaskSpec(
        name="audit",
        description="Audit the lock file against the advisory database",
        source_filter=CARGO_MANIFESTS,
        consumes_dependency_cache=False,
        command=(
            "cargo", "audit", "--db", "{advisory_db}", "--no-fetch",
            "--file", "{source}/Cargo.lock",
        ),
        tools=("cargo", "cargo-audit"),
    ),
    TaskSpec(
        name="nextest",
        description="Run the test suite with cargo-nextest",
        source_filter=CARGO_SOURCES,
        consumes_dependency_cache=True,
        command=("cargo", "nextest", "run", "--partition", "count:1/1"),
        env=_CARGO_ENV,
        tools=("cargo", "cargo-nextest"),
    ),
    TaskSpec(
        name="coverage",
        description="Measure code coverage (tarpaulin supports x86_64 only)",
        source_filter=CARGO_SOURCES,
        consumes_dependency_cache=True,
        platforms=frozenset({"x86_64-linux"}),
        command=("cargo", "tarpaulin", "--skip-clean"),
        env=_CARGO_ENV,
        tools=("cargo", "cargo-tarpaulin"),
    ),
)


def load_task_catalog(path: Path) -> list[TaskSpec]:
    """Load a ``[[tasks]]`` TOML catalog.

    Raises:
        FilterError: If a task's source_filter is malformed.
        RegistryError: If the file is unreadable or a task is otherwise invalid.
    """
    path = Path(path).expanduser()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise RegistryError(f"Cannot read task catalog {path}: {exc}") from exc

    raw_tasks = data.get("tasks")
    if not isinstance(raw_tasks, list) or not raw_tasks:
        raise RegistryError(f"Task catalog {path} has no [[tasks]] entries")

    tasks: list[TaskSpec] = []
    for idx, raw in enumerate(raw_tasks):
        try:
            tasks.append(TaskSpec.model_validate(raw))
        except ValidationError as exc:
            name = raw.get("name", f"#{idx}") if isinstance(raw, dict) else f"#{idx}"
            if any(err["loc"] and err["loc"][0] == "source_filter" for err in exc.errors()):
                raise FilterError(
                    f"Task '{name}' has a malformed source_filter: {exc}"
                ) from exc
            raise RegistryError(f"Invalid task '{name}' in {path}: {exc}") from exc

    logger.info("Loaded %d tasks from %s", len(tasks), path)
    return tasks


def build_registry(
    tasks_file: Path | None = None, enabled: list[str] | None = None
) -> TaskRegistry:
    """Build the process-wide registry from a catalog file or the defaults."""
    tasks = load_task_catalog(tasks_file) if tasks_file else list(DEFAULT_TASKS)
    registry = TaskRegistry(tasks)
    if enabled:
        registry = registry.select(enabled)
    return registry
