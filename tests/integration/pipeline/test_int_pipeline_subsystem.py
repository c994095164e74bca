# tests/integration/pipeline/test_int_pipeline_subsystem.py - v5
"""Integration tests for the pipeline subsystem.

Covers: source/tree.py, source/filters.py, cache/artifact_cache.py,
        cache/json_store.py, cache/sqlite_store.py, pipeline/toolchain.py,
        pipeline/executor.py, pipeline/workspace.py, pipeline/orchestrator.py,
        pipeline/report.py

Real subprocesses only: the compiler and every task are Python one-liners.
"""

from __future__ import annotations

import asyncio
import sys

import pytest

from depforge.cache.artifact_cache import DependencyArtifactCache
from depforge.cache.json_store import JsonCacheStore
from depforge.cache.memory_store import MemoryCacheStore
from depforge.cache.sqlite_store import SqliteCacheStore
from depforge.config.tasks import CARGO_MANIFESTS, CARGO_SOURCES
from depforge.core.models import SourceSet
from depforge.pipeline.orchestrator import PipelineOrchestrator
from depforge.pipeline.report import render_report
from depforge.source.tree import load_source_tree
from depforge.tasks.models import TaskSpec
from depforge.tasks.registry import TaskRegistry

PY = sys.executable

# Consumers check that the unpacked dependency artifact is really there.
USES_DEPS = (
    "import os, sys; "
    "d = os.environ['DEPFORGE_ARTIFACT_DIR']; "
    "found = os.listdir(os.path.join(d, 'release', 'deps')); "
    "print('deps:', found); "
    "sys.exit(0 if found else 1)"
)


def _task(name: str, code: str, consumes: bool = True, **kwargs) -> TaskSpec:
    return TaskSpec(
        name=name,
        command=(PY, "-c", code),
        consumes_dependency_cache=consumes,
        **kwargs,
    )


# =====================================================================
#  Build / lint / audit scenario
# =====================================================================


class TestScenario:
    """manifest.lock only, tasks [build, lint, audit], lint exits 1."""

    @pytest.fixture
    def scenario_registry(self) -> TaskRegistry:
        return TaskRegistry([
            _task("build", USES_DEPS, consumes=True),
            _task("lint", "import sys; print('lint: 1 problem'); sys.exit(1)", consumes=False),
            _task("audit", USES_DEPS, consumes=True),
        ])

    @pytest.mark.asyncio
    async def test_one_build_three_results(
        self, scenario_registry, command_toolchain, build_counter, count_builds
    ):
        source = SourceSet.from_mapping({"manifest.lock": "v1"})
        cache = DependencyArtifactCache(MemoryCacheStore())
        orch = PipelineOrchestrator(
            scenario_registry, cache, command_toolchain,
            manifest_files=("manifest.toml",), lock_files=("manifest.lock",),
        )

        report = await orch.run(source, "x")

        assert count_builds(build_counter) == 1
        assert report.task_names == ["build", "lint", "audit"]
        assert report.overall == "failure"
        assert report.get("build").status == "success"
        assert report.get("audit").status == "success"
        assert report.get("lint").status == "failure"
        assert "lint: 1 problem" in render_report(report)

    @pytest.mark.asyncio
    async def test_parallel_same_outcome(
        self, scenario_registry, command_toolchain, build_counter, count_builds
    ):
        source = SourceSet.from_mapping({"manifest.lock": "v1"})
        orch = PipelineOrchestrator(
            scenario_registry, DependencyArtifactCache(MemoryCacheStore()), command_toolchain,
            manifest_files=("manifest.toml",), lock_files=("manifest.lock",),
            max_parallel=3,
        )
        report = await orch.run(source, "x")
        assert count_builds(build_counter) == 1
        assert [r.status for r in report.results] == ["success", "failure", "success"]


# =====================================================================
#  Cache reuse across runs and processes (persistent stores)
# =====================================================================


@pytest.fixture(params=["json", "sqlite"])
def persistent_store_factory(request, tmp_path):
    opened = []

    def factory():
        if request.param == "json":
            store = JsonCacheStore(cache_root=tmp_path / "cache")
        else:
            store = SqliteCacheStore(db_path=tmp_path / "cache.db")
        opened.append(store)
        return store

    yield factory
    for store in opened:
        store.close()


class TestCacheReuse:
    def _registry(self) -> TaskRegistry:
        return TaskRegistry([
            _task("build", USES_DEPS, source_filter=CARGO_SOURCES),
            _task("audit", "import os; print(sorted(os.listdir('.')))", consumes=False,
                  source_filter=CARGO_MANIFESTS),
        ])

    @pytest.mark.asyncio
    async def test_second_process_reuses_artifact(
        self, project_dir, persistent_store_factory, command_toolchain, build_counter, count_builds
    ):
        source = load_source_tree(project_dir)
        assert "target/debug/demo" not in source

        for _ in range(2):
            # A fresh cache object per run, as in separate CLI invocations.
            cache = DependencyArtifactCache(persistent_store_factory())
            report = await PipelineOrchestrator(
                self._registry(), cache, command_toolchain
            ).run(source, "x86_64-linux")
            assert report.success, render_report(report)

        assert count_builds(build_counter) == 1
        assert report.cache_stats.hits == 1

    @pytest.mark.asyncio
    async def test_source_edit_keeps_cache(
        self, project_dir, persistent_store_factory, command_toolchain, build_counter, count_builds
    ):
        store = persistent_store_factory()
        orch = PipelineOrchestrator(self._registry(), DependencyArtifactCache(store), command_toolchain)
        await orch.run(load_source_tree(project_dir), "x86_64-linux")

        (project_dir / "src" / "main.rs").write_text("fn main() { println!(\"edit\"); }\n")
        report = await orch.run(load_source_tree(project_dir), "x86_64-linux")

        assert report.success
        assert count_builds(build_counter) == 1

    @pytest.mark.asyncio
    async def test_lock_change_rebuilds(
        self, project_dir, persistent_store_factory, command_toolchain, build_counter, count_builds
    ):
        store = persistent_store_factory()
        orch = PipelineOrchestrator(self._registry(), DependencyArtifactCache(store), command_toolchain)
        await orch.run(load_source_tree(project_dir), "x86_64-linux")

        (project_dir / "Cargo.lock").write_text("version = 4\n")
        await orch.run(load_source_tree(project_dir), "x86_64-linux")

        assert count_builds(build_counter) == 2
        assert len(await store.list_keys()) == 2

    @pytest.mark.asyncio
    async def test_platforms_cached_separately(
        self, project_dir, persistent_store_factory, command_toolchain, build_counter
    ):
        store = persistent_store_factory()
        orch = PipelineOrchestrator(self._registry(), DependencyArtifactCache(store), command_toolchain)
        source = load_source_tree(project_dir)
        await orch.run(source, "x86_64-linux")
        await orch.run(source, "aarch64-linux")
        assert build_counter.read_text().splitlines() == ["x86_64-linux", "aarch64-linux"]


# =====================================================================
#  Concurrent runs sharing one cache
# =====================================================================


class TestConcurrentRuns:
    @pytest.mark.asyncio
    async def test_two_runs_one_build(
        self, project_dir, command_toolchain, build_counter, count_builds
    ):
        cache = DependencyArtifactCache(MemoryCacheStore())
        registry = TaskRegistry([_task("build", USES_DEPS)])
        source = load_source_tree(project_dir)
        first, second = await asyncio.gather(
            PipelineOrchestrator(registry, cache, command_toolchain).run(source, "x86_64-linux"),
            PipelineOrchestrator(registry, cache, command_toolchain).run(source, "x86_64-linux"),
        )
        assert first.success and second.success
        assert count_builds(build_counter) == 1
        assert cache.stats.shared_waits == 1

    @pytest.mark.asyncio
    async def test_failed_build_then_fixed(self, project_dir, tmp_path):
        from depforge.pipeline.toolchain import CommandToolchain

        flag = tmp_path / "broken"
        flag.write_text("yes")
        script = (
            "import os, pathlib, sys; "
            f"sys.exit(1) if pathlib.Path({str(flag)!r}).exists() else None; "
            "pathlib.Path('target/release/deps').mkdir(parents=True); "
            "pathlib.Path('target/release/deps/x').write_text('ok')"
        )
        toolchain = CommandToolchain([PY, "-c", script])
        cache = DependencyArtifactCache(MemoryCacheStore())
        registry = TaskRegistry([
            _task("build", USES_DEPS),
            _task("fmt", "print('formatted')", consumes=False),
        ])
        orch = PipelineOrchestrator(registry, cache, toolchain)
        source = load_source_tree(project_dir)

        broken = await orch.run(source, "x86_64-linux")
        assert [r.status for r in broken.results] == ["failure", "success"]
        assert "exited with status 1" in broken.get("build").cause

        flag.unlink()
        fixed = await orch.run(source, "x86_64-linux")
        assert fixed.success
