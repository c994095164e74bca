# src/pipeline/toolchain.py - v1
"""Toolchain collaborator: compiles the dependency closure.

The pipeline only needs ``build_dependencies(source_set, platform)``
returning artifact bytes; anything that raises is turned into a
BuildFailure by the artifact cache. CommandToolchain runs a configured build
command over the manifest/lock view and packs the output directory into a
deterministic tar.gz.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from depforge.cache.models import BuiltArtifact
from depforge.core.errors import DepforgeError
from depforge.core.models import SourceFile, SourceSet
from depforge.pipeline.executor import CommandLaunchError, run_command
from depforge.pipeline.workspace import pack_directory, task_workspace

logger = logging.getLogger(__name__)

# Placeholder crate roots so cargo can compile dependencies without the
# project's own sources.
CARGO_STUB_SOURCES: dict[str, bytes] = {
    "src/lib.rs": b"",
    "src/main.rs": b"fn main() {}\n",
}

_OUTPUT_TAIL_LINES = 40


class ToolchainError(DepforgeError):
    """The build command failed or produced nothing to cache."""


@runtime_checkable
class Toolchain(Protocol):
    """Anything able to compile a dependency closure for a platform."""

    async def build_dependencies(
        self, source_set: SourceSet, platform: str
    ) -> BuiltArtifact | bytes:
        ...


class CommandToolchain:
    """Build dependencies with an external command.

    Args:
        build_argv: Command run in the materialized dependency sources.
        output_dir: Directory (relative to the sources) packed as the artifact.
        version_argv: Command whose first output line is the toolchain version.
        stub_sources: Files added when missing so the build can run on
            manifests and lock file alone.
        env: Extra environment for the build command.
    """

    def __init__(
        self,
        build_argv: Sequence[str],
        output_dir: str = "target",
        version_argv: Sequence[str] | None = None,
        stub_sources: Mapping[str, bytes] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        if not build_argv:
            raise ValueError("build_argv must not be empty")
        self._build_argv = list(build_argv)
        self._output_dir = output_dir
        self._version_argv = list(version_argv) if version_argv else None
        self._stub_sources = dict(stub_sources or {})
        self._env = dict(env or {})
        self._version: str | None = None

    async def version(self) -> str:
        """Toolchain version string, resolved once."""
        if self._version is not None:
            return self._version
        self._version = "unknown"
        if self._version_argv:
            try:
                outcome = await run_command(self._version_argv, Path.cwd(), label="version")
            except CommandLaunchError as exc:
                logger.warning("Cannot determine toolchain version: %s", exc.reason)
            else:
                if outcome.exit_code == 0 and outcome.output.strip():
                    self._version = outcome.output.strip().splitlines()[0]
        return self._version

    async def build_dependencies(
        self, source_set: SourceSet, platform: str
    ) -> BuiltArtifact:
        """Compile ``source_set`` for ``platform`` and pack the output directory.

        Raises:
            ToolchainError: On launch failure, non-zero exit or missing output.
        """
        build_sources = self._with_stubs(source_set)
        with task_workspace("deps", build_sources) as ws:
            output = ws.source_dir / self._output_dir
            env = dict(os.environ)
            env.update(self._env)
            env["DEPFORGE_PLATFORM"] = platform

            logger.info(
                "Building dependencies for %s: %s", platform, " ".join(self._build_argv)
            )
            try:
                outcome = await run_command(
                    self._build_argv, ws.source_dir, env, label="dependencies"
                )
            except CommandLaunchError as exc:
                raise ToolchainError(exc.reason) from exc

            if outcome.exit_code != 0:
                tail = "\n".join(outcome.output.splitlines()[-_OUTPUT_TAIL_LINES:])
                raise ToolchainError(
                    f"build command exited with status {outcome.exit_code}\n{tail}"
                )
            if not output.is_dir():
                raise ToolchainError(
                    f"build command produced no '{self._output_dir}' directory"
                )
            artifact = pack_directory(output)

        return BuiltArtifact(
            artifact=artifact,
            toolchain_version=await self.version(),
            builder=" ".join(self._build_argv),
        )

    def _with_stubs(self, source_set: SourceSet) -> SourceSet:
        missing = [
            SourceFile(path=path, content=content)
            for path, content in self._stub_sources.items()
            if path not in source_set
        ]
        if not missing:
            return source_set
        return SourceSet(files=source_set.files + tuple(missing))
