# src/main.py - v2
"""CLI entry point: check, tasks, fingerprint, env commands.

Usage:
    depforge check [ROOT] [--platform P] [--parallel N] [--report FILE]
    depforge tasks [--platform P]
    depforge fingerprint [ROOT]
    depforge env [ROOT] [--platform P]

Exit codes: 0 success, 1 task failure, 2 configuration error, 130 interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

from depforge.core.errors import FilterError
from depforge.version import __version__

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    from depforge.config.settings import ConfigurationError, load_settings
    from depforge.logging.logger import setup_logging
    from depforge.tasks.registry import RegistryError

    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        overrides = _settings_overrides(args)
        settings = load_settings(**overrides)
    except (ConfigurationError, ValidationError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED
    except (FilterError, RegistryError, ConfigurationError) as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="depforge",
        description=f"depforge v{__version__} - cached dependency builds and checks",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--platform", default=None,
        help="Platform tag (default: PLATFORM setting or detected)",
    )
    common.add_argument(
        "--tasks-file", type=Path, default=None,
        help="TOML task catalog replacing the built-in one",
    )

    # --- check ---
    p_check = subparsers.add_parser(
        "check", parents=[common], help="Build dependencies and run all tasks",
    )
    p_check.add_argument(
        "root", nargs="?", type=Path, default=Path("."),
        help="Project root (default: current directory)",
    )
    p_check.add_argument(
        "-j", "--parallel", type=int, default=None,
        help="Max tasks running at once (default: MAX_PARALLEL_TASKS)",
    )
    p_check.add_argument(
        "--report", type=Path, default=None,
        help="Also write the JSON report to this file",
    )
    p_check.add_argument(
        "--only", default=None,
        help="Comma-separated task names to run",
    )
    p_check.set_defaults(func=_cmd_check)

    # --- tasks ---
    p_tasks = subparsers.add_parser(
        "tasks", parents=[common], help="List tasks applicable on a platform",
    )
    p_tasks.add_argument(
        "--all-platforms", action="store_true",
        help="Show which default platforms offer each task",
    )
    p_tasks.set_defaults(func=_cmd_tasks)

    # --- fingerprint ---
    p_fp = subparsers.add_parser(
        "fingerprint", parents=[common], help="Print the dependency fingerprint",
    )
    p_fp.add_argument("root", nargs="?", type=Path, default=Path("."))
    p_fp.set_defaults(func=_cmd_fingerprint)

    # --- env ---
    p_env = subparsers.add_parser(
        "env", parents=[common], help="Print shell exports for a dev environment",
    )
    p_env.add_argument("root", nargs="?", type=Path, default=Path("."))
    p_env.set_defaults(func=_cmd_env)

    return parser


def _settings_overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {}
    if getattr(args, "platform", None):
        overrides["platform"] = args.platform
    if getattr(args, "tasks_file", None):
        overrides["tasks_file"] = args.tasks_file
    if getattr(args, "parallel", None) is not None:
        overrides["max_parallel_tasks"] = args.parallel
    if getattr(args, "report", None):
        overrides["report_file"] = args.report
    if getattr(args, "only", None):
        overrides["tasks_enabled"] = args.only
    return overrides


async def _cmd_check(args: argparse.Namespace, settings) -> int:
    """Run the full pipeline and print the report."""
    from depforge.cache.artifact_cache import DependencyArtifactCache
    from depforge.cache.cache_factory import create_cache_store
    from depforge.pipeline.factory import build_orchestrator, resolve_platform
    from depforge.pipeline.report import render_report, write_report_json
    from depforge.source.tree import load_source_tree

    platform = resolve_platform(settings)
    source = load_source_tree(args.root, settings.source_denylist_list)
    store = create_cache_store(settings)
    orchestrator = build_orchestrator(settings, DependencyArtifactCache(store))

    loop = asyncio.get_running_loop()
    interrupt_installed = _install_interrupt(loop, orchestrator.cancel)
    try:
        report = await orchestrator.run(source, platform)
    finally:
        if interrupt_installed:
            loop.remove_signal_handler(signal.SIGINT)
        store.close()

    print(render_report(report, settings.diagnostic_excerpt_lines))
    if settings.report_file is not None:
        write_report_json(report, settings.report_file)
    return report.exit_code


async def _cmd_tasks(args: argparse.Namespace, settings) -> int:
    """List tasks offered on the platform, in run order."""
    from depforge.config.tasks import build_registry
    from depforge.pipeline.factory import resolve_platform

    registry = build_registry(settings.tasks_file, settings.tasks_enabled_list)
    if args.all_platforms:
        return _print_platform_matrix(registry)

    platform = resolve_platform(settings)
    tasks = registry.applicable_tasks(platform)
    width = max([len(t.name) for t in tasks] + [4])
    print(f"Tasks on {platform}:")
    for task in tasks:
        marker = "deps" if task.consumes_dependency_cache else "    "
        print(f"  {task.name:<{width}}  {marker}  {task.description}")
    return 0


def _print_platform_matrix(registry) -> int:
    from depforge.core.platform import DEFAULT_PLATFORMS

    width = max([len(t.name) for t in registry.tasks] + [4])
    print("Tasks on default platforms:")
    for task in registry.tasks:
        offered = [p for p in DEFAULT_PLATFORMS if task.applies_to(p)]
        print(f"  {task.name:<{width}}  {', '.join(offered) or '-'}")
    return 0


async def _cmd_fingerprint(args: argparse.Namespace, settings) -> int:
    """Print the dependency fingerprint of a project."""
    from depforge.pipeline.factory import dependency_fingerprint
    from depforge.source.tree import load_source_tree

    source = load_source_tree(args.root, settings.source_denylist_list)
    print(dependency_fingerprint(source, settings).digest)
    return 0


async def _cmd_env(args: argparse.Namespace, settings) -> int:
    """Print shell exports describing the development environment."""
    from depforge.cache.artifact_cache import DependencyArtifactCache
    from depforge.cache.cache_factory import create_cache_store
    from depforge.config.tasks import build_registry
    from depforge.pipeline.environment import EnvironmentComposer
    from depforge.pipeline.factory import dependency_fingerprint, resolve_platform
    from depforge.source.tree import load_source_tree

    platform = resolve_platform(settings)
    registry = build_registry(settings.tasks_file, settings.tasks_enabled_list)
    source = load_source_tree(args.root, settings.source_denylist_list)
    store = create_cache_store(settings)
    try:
        composer = EnvironmentComposer(
            registry, settings, cache=DependencyArtifactCache(store)
        )
        spec = await composer.compose(
            platform, dependency_fingerprint(source, settings)
        )
    finally:
        store.close()

    print(spec.shell_exports())
    print(f"# tools: {' '.join(spec.tools + spec.packages)}")
    if not spec.dependency_cached:
        print("# dependencies not built yet; run 'depforge check' first")
    return 0


def _install_interrupt(loop: asyncio.AbstractEventLoop, cancel) -> bool:
    """First Ctrl-C cancels the run gracefully, a second one aborts."""

    def _on_sigint() -> None:
        logger.warning("Cancelling run (press Ctrl-C again to abort)")
        cancel()
        loop.remove_signal_handler(signal.SIGINT)

    try:
        loop.add_signal_handler(signal.SIGINT, _on_sigint)
    except (NotImplementedError, RuntimeError):
        return False
    return True


if __name__ == "__main__":
    sys.exit(main())
