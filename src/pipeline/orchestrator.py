# src/pipeline/orchestrator.py - v2
"""Pipeline orchestrator: dependencies once, then every applicable task.

A run goes through four steps:
  1. Plan: filter the dependency view and every task's view, compute the
     dependency fingerprint. A FilterError here aborts the run before any
     build or task starts.
  2. Dependencies: if any task consumes the cache, obtain the shared
     ArtifactCacheEntry once for the run. Its outcome (entry or BuildFailure)
     is memoized and fanned out to every consuming task.
  3. Tasks: run in declared order, sequentially or with bounded parallelism.
     Fail-open: a failing task never stops the ones after it, and a
     dependency BuildFailure only fails the tasks that consume the cache.
  4. Aggregate: results are reported in declared order, not completion order.

The orchestrator does not retry and has no intrinsic timeouts.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Iterable
from datetime import datetime, timezone
from typing import TypeVar

from depforge.cache.artifact_cache import DependencyArtifactCache
from depforge.cache.fingerprint import compute_fingerprint
from depforge.cache.models import ArtifactCacheEntry
from depforge.core.errors import BuildFailure
from depforge.core.models import Fingerprint, SourceSet
from depforge.logging.context import set_run_context, set_task_context
from depforge.pipeline.executor import TaskExecutor
from depforge.pipeline.toolchain import Toolchain
from depforge.source.filters import (
    BasePredicate,
    dependency_predicate,
    filter_source,
    find_lock_content,
)
from depforge.tasks.models import SKIP_CANCELLED, PipelineReport, TaskResult, TaskSpec
from depforge.tasks.registry import TaskRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MANIFEST_FILES = ("Cargo.toml",)
DEFAULT_LOCK_FILES = ("Cargo.lock",)


class _RunCancelled(Exception):
    """Internal signal: cancel() was requested while a task was waiting."""


class PipelineOrchestrator:
    """Run the task registry against one project source tree.

    Args:
        registry: Static task catalog.
        cache: Shared dependency artifact cache, passed in by the caller.
        toolchain: Collaborator that compiles the dependency closure.
        executor: Runs task commands. Defaults to a plain TaskExecutor.
        manifest_files: Basenames of dependency manifests.
        lock_files: Basenames of lock files, in order of preference.
        max_parallel: Upper bound on concurrently running tasks.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        cache: DependencyArtifactCache,
        toolchain: Toolchain,
        executor: TaskExecutor | None = None,
        manifest_files: Iterable[str] = DEFAULT_MANIFEST_FILES,
        lock_files: Iterable[str] = DEFAULT_LOCK_FILES,
        max_parallel: int = 1,
    ) -> None:
        if max_parallel < 1:
            raise ValueError("max_parallel must be >= 1")
        self._registry = registry
        self._cache = cache
        self._toolchain = toolchain
        self._executor = executor or TaskExecutor()
        self._lock_files = tuple(lock_files)
        self._dependency_filter = dependency_predicate(manifest_files, self._lock_files)
        self._max_parallel = max_parallel
        self._cancel_event: asyncio.Event | None = None
        self._cancel_requested = False

    def cancel(self) -> None:
        """Request cancellation of the current run.

        Running commands are terminated and recorded as skipped; tasks that
        have not started are recorded as skipped too. A dependency build in
        progress keeps running; run() returns once it has populated the cache.
        """
        self._cancel_requested = True
        if self._cancel_event is not None:
            self._cancel_event.set()

    def dependency_fingerprint(self, full_source: SourceSet) -> Fingerprint:
        """Fingerprint of the manifest + lock view of ``full_source``."""
        return dependency_view(full_source, self._dependency_filter, self._lock_files)[2]

    async def run(self, full_source: SourceSet, platform: str) -> PipelineReport:
        """Execute every task applicable on ``platform``.

        Raises:
            FilterError: If any source view cannot be computed. No task runs.
        """
        run_id = uuid.uuid4().hex[:12]
        started_at = datetime.now(timezone.utc)
        set_run_context(run_id, platform)

        # Step 1: plan
        tasks = self._registry.applicable_tasks(platform)
        dep_source, lock, dep_fingerprint = dependency_view(
            full_source, self._dependency_filter, self._lock_files
        )
        planned = [(task, filter_source(full_source, task.source_filter)) for task in tasks]

        logger.info(
            "Run %s on %s: %d tasks, dependencies %s (%d files, lock=%s)",
            run_id, platform, len(planned), dep_fingerprint.short,
            len(dep_source), lock is not None,
        )

        self._cancel_event = asyncio.Event()
        if self._cancel_requested:
            self._cancel_event.set()

        # Step 2: dependencies, shared by every consuming task
        dep_future: asyncio.Future[ArtifactCacheEntry] | None = None
        if any(task.consumes_dependency_cache for task in tasks):
            dep_future = asyncio.ensure_future(
                self._resolve_dependencies(dep_fingerprint, dep_source, platform)
            )
            dep_future.add_done_callback(_retrieve_exception)

        # Step 3: tasks
        semaphore = asyncio.Semaphore(self._max_parallel)
        try:
            results = await asyncio.gather(
                *(
                    self._run_task(task, source, dep_future, semaphore)
                    for task, source in planned
                )
            )
        except asyncio.CancelledError:
            if dep_future is not None:
                # Only detaches this run; the shared build itself is shielded.
                dep_future.cancel()
            raise
        finally:
            cancelled = self._cancel_event.is_set()
            self._cancel_event = None
            self._cancel_requested = False

        if dep_future is not None and not dep_future.done():
            # Every consumer stopped waiting. Let the build finish so the
            # cache is populated before the caller's event loop shuts down.
            logger.info("Run %s cancelled, waiting for the dependency build", run_id)
            await asyncio.wait({dep_future})

        # Step 4: aggregate
        report = PipelineReport(
            run_id=run_id,
            platform=platform,
            dependency_fingerprint=dep_fingerprint.digest,
            results=tuple(results),
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            cancelled=cancelled,
            cache_stats=self._cache.stats,
        )
        logger.info(
            "Run %s complete: %s, %d failed, %d skipped, %dms",
            run_id, report.overall, len(report.failed_tasks),
            len(report.skipped_tasks), report.duration_ms,
        )
        return report

    async def _resolve_dependencies(
        self, fingerprint: Fingerprint, dep_source: SourceSet, platform: str
    ) -> ArtifactCacheEntry:
        return await self._cache.get_or_build(
            fingerprint,
            platform,
            lambda: self._toolchain.build_dependencies(dep_source, platform),
        )

    async def _run_task(
        self,
        task: TaskSpec,
        source: SourceSet,
        dep_future: asyncio.Future[ArtifactCacheEntry] | None,
        semaphore: asyncio.Semaphore,
    ) -> TaskResult:
        async with semaphore:
            set_task_context(task.name)
            if self._is_cancelled():
                return _skipped(task, SKIP_CANCELLED)

            start_ns = time.monotonic_ns()
            entry: ArtifactCacheEntry | None = None
            try:
                if task.consumes_dependency_cache and dep_future is not None:
                    entry = await self._until_cancelled(asyncio.shield(dep_future))
                return await self._until_cancelled(
                    self._executor.execute(task, source, entry)
                )
            except _RunCancelled:
                logger.warning("Task '%s' cancelled", task.name)
                return _skipped(task, SKIP_CANCELLED, start_ns)
            except BuildFailure as exc:
                logger.error("Task '%s' failed: dependencies unavailable", task.name)
                return TaskResult(
                    task_name=task.name,
                    status="failure",
                    diagnostics=str(exc),
                    duration_ms=_elapsed_ms(start_ns),
                    cause=str(exc),
                )
            except Exception as exc:
                logger.exception("Task '%s' raised unexpectedly", task.name)
                return TaskResult(
                    task_name=task.name,
                    status="failure",
                    diagnostics=f"{type(exc).__name__}: {exc}",
                    duration_ms=_elapsed_ms(start_ns),
                    cause=str(exc),
                )
            finally:
                set_task_context(None)

    async def _until_cancelled(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless cancel() fires first."""
        work = asyncio.ensure_future(awaitable)
        event = self._cancel_event
        if event is None:
            return await work
        waiter = asyncio.ensure_future(event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work in done:
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        raise _RunCancelled()

    def _is_cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()


def dependency_view(
    full_source: SourceSet,
    predicate: BasePredicate,
    lock_files: Iterable[str],
) -> tuple[SourceSet, bytes | None, Fingerprint]:
    """Manifest + lock view of a project, its lock content and its fingerprint."""
    dep_source = filter_source(full_source, predicate)
    lock = find_lock_content(full_source, lock_files)
    return dep_source, lock, compute_fingerprint(dep_source, lock)


def _skipped(task: TaskSpec, reason: str, start_ns: int | None = None) -> TaskResult:
    return TaskResult(
        task_name=task.name,
        status="skipped",
        skip_reason=reason,
        duration_ms=_elapsed_ms(start_ns) if start_ns is not None else 0,
    )


def _elapsed_ms(start_ns: int) -> int:
    return (time.monotonic_ns() - start_ns) // 1_000_000


def _retrieve_exception(fut: asyncio.Future[ArtifactCacheEntry]) -> None:
    if not fut.cancelled():
        fut.exception()
