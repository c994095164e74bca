# src/pipeline/environment.py - v1
"""Environment composer: describe a development shell sharing the pipeline's cache.

Composition only assembles a description. Nothing is built or executed; the
dependency entry is looked up, never created, and tasks are listed as
available rather than run.
"""

from __future__ import annotations

import shlex
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

from depforge.cache.artifact_cache import DependencyArtifactCache
from depforge.cache.models import cache_key
from depforge.config.settings import Settings
from depforge.core.models import Fingerprint
from depforge.tasks.registry import TaskRegistry


class EnvironmentSpec(BaseModel):
    """Description of an interactive environment for one platform."""

    model_config = ConfigDict(frozen=True)

    platform: str
    cache_backend: str
    cache_root: str
    dependency_key: str | None = None
    dependency_cached: bool = False
    tools: tuple[str, ...] = ()
    packages: tuple[str, ...] = ()
    tasks: tuple[str, ...] = ()
    variables: dict[str, str] = Field(default_factory=dict)

    def shell_exports(self) -> str:
        """``export`` lines for a POSIX shell."""
        return "\n".join(
            f"export {name}={shlex.quote(value)}"
            for name, value in sorted(self.variables.items())
        )


class EnvironmentComposer:
    """Assemble EnvironmentSpec values from the registry and settings.

    Args:
        registry: Same registry the pipeline runs.
        settings: Cache location and extra dev-shell packages.
        cache: Optional shared cache, used to report whether dependencies
            are already built.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        settings: Settings,
        cache: DependencyArtifactCache | None = None,
        extra_packages: Iterable[str] | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings
        self._cache = cache
        self._packages = tuple(
            extra_packages if extra_packages is not None
            else settings.dev_shell_packages_list
        )

    async def compose(
        self, platform: str, fingerprint: Fingerprint | None = None
    ) -> EnvironmentSpec:
        """Describe the shell for ``platform``.

        Args:
            platform: Platform tag; only tasks applicable there are listed.
            fingerprint: Dependency fingerprint to point the shell at.
        """
        tasks = tuple(t.name for t in self._registry.applicable_tasks(platform))
        tools = tuple(self._registry.required_tools(platform))
        cache_root = str(self._settings.cache_root.expanduser())

        variables = {
            "DEPFORGE_PLATFORM": platform,
            "DEPFORGE_CACHE_BACKEND": self._settings.cache_backend,
            "DEPFORGE_CACHE_ROOT": cache_root,
            "DEPFORGE_TASKS": ",".join(tasks),
        }

        key: str | None = None
        cached = False
        if fingerprint is not None:
            key = cache_key(fingerprint, platform)
            variables["DEPFORGE_DEPENDENCY_KEY"] = key
            if self._cache is not None:
                cached = await self._cache.peek(fingerprint, platform) is not None

        return EnvironmentSpec(
            platform=platform,
            cache_backend=self._settings.cache_backend,
            cache_root=cache_root,
            dependency_key=key,
            dependency_cached=cached,
            tools=tools,
            packages=tuple(dict.fromkeys(self._packages)),
            tasks=tasks,
            variables=variables,
        )
