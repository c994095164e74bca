# src/tasks/models.py - v1
"""Task domain models: TaskSpec, TaskResult, PipelineReport."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from depforge.cache.models import CacheStats
from depforge.source.filters import EverythingFilter, SourcePredicate

TaskStatus = Literal["success", "failure", "skipped"]

SKIP_CANCELLED = "cancelled"
EXIT_CANCELLED = 130


class TaskSpec(BaseModel):
    """Declarative description of one verification task.

    ``command`` is an argv template; ``{source}`` expands to the directory
    holding the task's filtered SourceSet and ``{artifact}`` to the borrowed
    dependency artifact file (empty when the task does not consume it).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(pattern=r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
    description: str = ""
    source_filter: SourcePredicate = Field(default_factory=EverythingFilter)
    consumes_dependency_cache: bool = True
    platforms: frozenset[str] | None = None
    command: tuple[str, ...]
    env: dict[str, str] = Field(default_factory=dict)
    tools: tuple[str, ...] = ()

    @field_validator("command")
    @classmethod
    def check_command(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v or not v[0].strip():
            raise ValueError("command must name an executable")
        return v

    @field_validator("platforms")
    @classmethod
    def check_platforms(cls, v: frozenset[str] | None) -> frozenset[str] | None:
        if v is not None and not v:
            raise ValueError("platforms must be omitted or non-empty")
        return v

    def applies_to(self, platform: str) -> bool:
        """Platform predicate; ``platforms=None`` means every platform."""
        return self.platforms is None or platform in self.platforms

    @property
    def required_tools(self) -> tuple[str, ...]:
        """Executables the task needs on PATH."""
        return self.tools or (self.command[0],)


class TaskResult(BaseModel):
    """Outcome of one TaskSpec execution."""

    model_config = ConfigDict(frozen=True)

    task_name: str
    status: TaskStatus
    skip_reason: str | None = None
    diagnostics: str = ""
    exit_code: int | None = None
    duration_ms: int = 0
    source_fingerprint: str | None = None
    cause: str | None = None

    @property
    def failed(self) -> bool:
        return self.status == "failure"

    def excerpt(self, max_lines: int = 20) -> str:
        """Last ``max_lines`` lines of diagnostics."""
        lines = self.diagnostics.rstrip().splitlines()
        if len(lines) <= max_lines:
            return "\n".join(lines)
        return "\n".join(["...", *lines[-max_lines:]])


class PipelineReport(BaseModel):
    """Aggregated outcome of one orchestrator run, in registry order."""

    model_config = ConfigDict(frozen=True)

    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    platform: str
    dependency_fingerprint: str | None = None
    results: tuple[TaskResult, ...] = ()
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    cancelled: bool = False
    cache_stats: CacheStats | None = None

    @property
    def success(self) -> bool:
        """True iff every non-skipped task succeeded."""
        return not any(r.failed for r in self.results)

    @property
    def overall(self) -> TaskStatus:
        return "success" if self.success else "failure"

    @property
    def exit_code(self) -> int:
        """0 on success, 1 on any failure, 130 if the run was cancelled."""
        if self.cancelled:
            return EXIT_CANCELLED
        return 0 if self.success else 1

    @property
    def task_names(self) -> list[str]:
        return [r.task_name for r in self.results]

    @property
    def failed_tasks(self) -> list[str]:
        return [r.task_name for r in self.results if r.status == "failure"]

    @property
    def skipped_tasks(self) -> list[str]:
        return [r.task_name for r in self.results if r.status == "skipped"]

    @property
    def duration_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def get(self, task_name: str) -> TaskResult | None:
        for r in self.results:
            if r.task_name == task_name:
                return r
        return None
