# src/tasks/registry.py - v1
"""Task registry: the static, ordered catalog of verification tasks.

The registry is built once at process start and never mutated. It performs
no execution; ``applicable_tasks`` is a pure lookup by platform tag.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from depforge.core.errors import DepforgeError
from depforge.tasks.models import TaskSpec

logger = logging.getLogger(__name__)


class RegistryError(DepforgeError):
    """Raised when the task catalog is inconsistent."""


class TaskRegistry:
    """Ordered collection of TaskSpec values.

    Args:
        tasks: Tasks in declared order. Names must be unique.
    """

    def __init__(self, tasks: Iterable[TaskSpec]) -> None:
        ordered = tuple(tasks)
        seen: set[str] = set()
        for task in ordered:
            if task.name in seen:
                raise RegistryError(f"Duplicate task name: '{task.name}'")
            seen.add(task.name)
        self._tasks = ordered
        logger.debug("Registry holds %d tasks: %s", len(ordered), self.names)

    @property
    def tasks(self) -> tuple[TaskSpec, ...]:
        return self._tasks

    @property
    def names(self) -> list[str]:
        """Task names in declared order."""
        return [t.name for t in self._tasks]

    def __len__(self) -> int:
        return len(self._tasks)

    def get(self, name: str) -> TaskSpec | None:
        """Get task by name, or None if not registered."""
        for task in self._tasks:
            if task.name == name:
                return task
        return None

    def get_or_raise(self, name: str) -> TaskSpec:
        """Get task by name, raise if not found."""
        task = self.get(name)
        if task is None:
            raise RegistryError(f"Task '{name}' not found in registry")
        return task

    def applicable_tasks(self, platform: str) -> tuple[TaskSpec, ...]:
        """Tasks offered on ``platform``, in declared order.

        Tasks restricted to other platforms are omitted, not reported.
        """
        return tuple(t for t in self._tasks if t.applies_to(platform))

    def select(self, names: Iterable[str]) -> TaskRegistry:
        """Sub-registry with only ``names``, keeping declared order."""
        wanted = list(names)
        for name in wanted:
            self.get_or_raise(name)
        return TaskRegistry(t for t in self._tasks if t.name in wanted)

    def required_tools(self, platform: str) -> list[str]:
        """Union of executables needed by the tasks applicable on ``platform``."""
        tools: dict[str, None] = {}
        for task in self.applicable_tasks(platform):
            for tool in task.required_tools:
                tools.setdefault(tool, None)
        return sorted(tools)
