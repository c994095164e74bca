# src/pipeline/executor.py - v1
"""Task command execution.

Runs a task's external command inside a private workspace and maps its exit
status to a TaskResult. A command that cannot be launched is a failure with a
diagnostic, never a silent drop. Cancellation terminates the child process
and propagates CancelledError to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from depforge.cache.fingerprint import compute_fingerprint
from depforge.cache.models import ArtifactCacheEntry
from depforge.core.errors import TaskExecutionFailure
from depforge.core.models import SourceSet
from depforge.pipeline.workspace import task_workspace
from depforge.tasks.models import TaskResult, TaskSpec

logger = logging.getLogger(__name__)

DEFAULT_TERMINATE_GRACE_S = 5.0

_PLACEHOLDER = re.compile(r"\{([a-z_]+)\}")


class CommandLaunchError(TaskExecutionFailure):
    """The executable could not be started (missing, not executable...)."""


@dataclass(frozen=True)
class CommandOutcome:
    """Exit status and merged stdout/stderr of one command."""

    exit_code: int
    output: str
    duration_ms: int


def render_template(value: str, variables: Mapping[str, str]) -> str:
    """Expand known ``{name}`` placeholders; unknown braces are left as-is."""
    return _PLACEHOLDER.sub(
        lambda m: variables.get(m.group(1), m.group(0)), value
    )


async def run_command(
    argv: Sequence[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    label: str = "",
    terminate_grace_s: float = DEFAULT_TERMINATE_GRACE_S,
) -> CommandOutcome:
    """Run ``argv`` to completion.

    Raises:
        CommandLaunchError: If the process cannot be started.
        asyncio.CancelledError: If cancelled; the child is terminated first.
    """
    start_ns = time.monotonic_ns()
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            env=dict(env) if env is not None else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as exc:
        raise CommandLaunchError(
            label or argv[0], f"could not launch '{argv[0]}': {exc}"
        ) from exc

    try:
        stdout, _ = await proc.communicate()
    except asyncio.CancelledError:
        logger.warning("Terminating '%s' (pid %s)", label or argv[0], proc.pid)
        await _terminate(proc, terminate_grace_s)
        raise

    duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
    return CommandOutcome(
        exit_code=proc.returncode if proc.returncode is not None else -1,
        output=stdout.decode("utf-8", errors="replace") if stdout else "",
        duration_ms=duration_ms,
    )


async def _terminate(proc: asyncio.subprocess.Process, grace_s: float) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
        await asyncio.wait_for(proc.wait(), timeout=grace_s)
    except ProcessLookupError:
        return
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()


class TaskExecutor:
    """Runs TaskSpec commands.

    Args:
        variables: Extra template values (e.g. ``advisory_db``, ``platform``).
        base_env: Environment inherited by every command. Defaults to os.environ.
        work_dir: Parent directory for task workspaces (default: system temp).
    """

    def __init__(
        self,
        variables: Mapping[str, str] | None = None,
        base_env: Mapping[str, str] | None = None,
        work_dir: Path | None = None,
    ) -> None:
        self._variables = dict(variables or {})
        self._base_env = dict(base_env) if base_env is not None else None
        self._work_dir = work_dir

    async def execute(
        self,
        task: TaskSpec,
        source_set: SourceSet,
        entry: ArtifactCacheEntry | None = None,
    ) -> TaskResult:
        """Run ``task`` against its filtered sources and borrowed artifact."""
        start_ns = time.monotonic_ns()
        source_fp = compute_fingerprint(source_set).digest

        with task_workspace(task.name, source_set, entry, self._work_dir) as ws:
            variables = {**self._variables, **ws.variables()}
            argv = [render_template(arg, variables) for arg in task.command]
            env = dict(self._base_env if self._base_env is not None else os.environ)
            env.update({k: render_template(v, variables) for k, v in task.env.items()})
            env["DEPFORGE_TASK"] = task.name
            env["DEPFORGE_SOURCE"] = variables["source"]
            if entry is not None:
                env["DEPFORGE_ARTIFACT"] = variables["artifact"]
                env["DEPFORGE_ARTIFACT_DIR"] = variables["artifact_dir"]

            logger.debug("Task '%s' running: %s", task.name, argv)
            try:
                outcome = await run_command(argv, ws.source_dir, env, label=task.name)
            except CommandLaunchError as exc:
                logger.error("Task '%s' could not start: %s", task.name, exc.reason)
                return TaskResult(
                    task_name=task.name,
                    status="failure",
                    diagnostics=exc.reason,
                    duration_ms=(time.monotonic_ns() - start_ns) // 1_000_000,
                    source_fingerprint=source_fp,
                    cause=str(exc),
                )

        duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
        if outcome.exit_code == 0:
            logger.info("Task '%s' passed in %dms", task.name, duration_ms)
            return TaskResult(
                task_name=task.name,
                status="success",
                diagnostics=outcome.output,
                exit_code=0,
                duration_ms=duration_ms,
                source_fingerprint=source_fp,
            )

        failure = TaskExecutionFailure(
            task.name, f"exited with status {outcome.exit_code}", outcome.exit_code
        )
        logger.warning("%s", failure)
        return TaskResult(
            task_name=task.name,
            status="failure",
            diagnostics=outcome.output,
            exit_code=outcome.exit_code,
            duration_ms=duration_ms,
            source_fingerprint=source_fp,
            cause=str(failure),
        )
