# src/pipeline/factory.py - v1
"""Wire an orchestrator from Settings.

Keeps construction in one place so the CLI and tests build the same objects.
The cache store is created by the caller, which owns its lifetime.
"""

from __future__ import annotations

import logging
import os

from depforge.cache.artifact_cache import DependencyArtifactCache
from depforge.config.settings import ConfigurationError, Settings
from depforge.config.tasks import build_registry
from depforge.core.models import Fingerprint, SourceSet
from depforge.core.platform import current_platform, validate_platform
from depforge.pipeline.executor import TaskExecutor
from depforge.pipeline.orchestrator import PipelineOrchestrator, dependency_view
from depforge.pipeline.toolchain import CARGO_STUB_SOURCES, CommandToolchain
from depforge.source.filters import dependency_predicate

logger = logging.getLogger(__name__)


def resolve_platform(settings: Settings) -> str:
    """Configured platform tag, or the one of the running host."""
    try:
        return validate_platform(settings.platform or current_platform())
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def create_toolchain(settings: Settings) -> CommandToolchain:
    return CommandToolchain(
        build_argv=settings.toolchain_build_argv,
        output_dir=settings.toolchain_output_dir,
        version_argv=settings.toolchain_version_argv or None,
        stub_sources=CARGO_STUB_SOURCES,
    )


def create_executor(settings: Settings) -> TaskExecutor:
    return TaskExecutor(
        variables={
            "advisory_db": os.path.expanduser(settings.advisory_db_path),
            "platform": resolve_platform(settings),
        },
    )


def build_orchestrator(
    settings: Settings, cache: DependencyArtifactCache
) -> PipelineOrchestrator:
    """Create a PipelineOrchestrator from settings.

    Args:
        settings: Loaded configuration.
        cache: Shared artifact cache; its store is closed by the caller.

    Raises:
        RegistryError: If the task catalog is invalid.
        FilterError: If a catalog task has a malformed source filter.
    """
    registry = build_registry(settings.tasks_file, settings.tasks_enabled_list)
    logger.debug(
        "Orchestrator: %d tasks, backend=%s, parallel=%d",
        len(registry), settings.cache_backend, settings.max_parallel_tasks,
    )
    return PipelineOrchestrator(
        registry=registry,
        cache=cache,
        toolchain=create_toolchain(settings),
        executor=create_executor(settings),
        manifest_files=settings.manifest_files_list,
        lock_files=settings.lock_files_list,
        max_parallel=settings.max_parallel_tasks,
    )


def dependency_fingerprint(source: SourceSet, settings: Settings) -> Fingerprint:
    """Fingerprint of the manifest + lock view, as the orchestrator computes it."""
    predicate = dependency_predicate(
        settings.manifest_files_list, settings.lock_files_list
    )
    return dependency_view(source, predicate, settings.lock_files_list)[2]
