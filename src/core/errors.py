# src/core/errors.py - v1
"""Error taxonomy shared by the cache, the filters and the orchestrator."""

from __future__ import annotations


class DepforgeError(Exception):
    """Base class for all depforge errors."""


class BuildFailure(DepforgeError):
    """The dependency toolchain failed to produce an artifact.

    Raised once per (fingerprint, platform) build attempt and fanned out as
    the cause of every task that consumes the dependency cache.
    """

    def __init__(self, fingerprint: str, platform: str, reason: str) -> None:
        self.fingerprint = fingerprint
        self.platform = platform
        self.reason = reason
        super().__init__(
            f"Dependency build failed for {fingerprint[:12]} on {platform}: {reason}"
        )


class TaskExecutionFailure(DepforgeError):
    """A task command exited non-zero or could not be launched."""

    def __init__(
        self, task_name: str, reason: str, exit_code: int | None = None
    ) -> None:
        self.task_name = task_name
        self.reason = reason
        self.exit_code = exit_code
        super().__init__(f"Task '{task_name}' failed: {reason}")


class FilterError(DepforgeError):
    """A source predicate is malformed or a source path is unreadable.

    Treated as a configuration error: the run aborts before any task starts.
    """
