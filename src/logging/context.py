# src/logging/context.py - v2
"""Contextual logging support: attach run_id, platform and task to log records.

asyncio tasks copy the current context when created, so a task name set
inside one pipeline task never leaks into a sibling running concurrently.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_platform: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "platform", default=None
)
_task: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "task", default=None
)


@dataclass
class LogContext:
    """Snapshot of the current logging context."""

    run_id: str | None = None
    platform: str | None = None
    task: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        platform=_platform.get(),
        task=_task.get(),
    )


def set_run_context(run_id: str, platform: str) -> None:
    """Set run-level context (once per pipeline run)."""
    _run_id.set(run_id)
    _platform.set(platform)


def set_task_context(task: str | None) -> None:
    """Set task-level context (per task execution)."""
    _task.set(task)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _platform.set(None)
    _task.set(None)
