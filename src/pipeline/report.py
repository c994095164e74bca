# src/pipeline/report.py - v1
"""PipelineReport export to a human-readable summary and JSON."""

from __future__ import annotations

import logging
from pathlib import Path

from depforge.tasks.models import PipelineReport, TaskResult

logger = logging.getLogger(__name__)


def render_report(report: PipelineReport, excerpt_lines: int = 20) -> str:
    """Human-readable report: one row per task plus diagnostic excerpts.

    Args:
        report: Report to render.
        excerpt_lines: Max diagnostic lines shown per failed task.

    Returns:
        Formatted multi-line string.
    """
    name_width = max([len(r.task_name) for r in report.results] + [4])
    fingerprint = (report.dependency_fingerprint or "-")[:12]

    lines: list[str] = [
        f"=== Pipeline Report: run {report.run_id} ({report.platform}) ===",
        f"Dependencies : {fingerprint}{_cache_summary(report)}",
        f"Duration     : {report.duration_ms / 1000:.1f}s",
        f"Result       : {_overall_label(report)} "
        f"({len(report.failed_tasks)} failed, {len(report.skipped_tasks)} skipped, "
        f"{len(report.results)} total)",
        "",
        f"{'TASK':<{name_width}}  {'STATUS':<8}  DURATION",
    ]

    for result in report.results:
        lines.append(
            f"{result.task_name:<{name_width}}  {_status_label(result):<8}  "
            f"{result.duration_ms / 1000:.1f}s"
        )
        if result.status == "failure":
            excerpt = result.excerpt(excerpt_lines)
            for line in excerpt.splitlines():
                lines.append(f"    | {line}")
        elif result.status == "skipped" and result.skip_reason:
            lines.append(f"    | skipped: {result.skip_reason}")

    return "\n".join(lines)


def write_report_json(report: PipelineReport, path: Path) -> None:
    """Write the full report (including complete diagnostics) as JSON."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Report written to %s", path)


def _status_label(result: TaskResult) -> str:
    return result.status.upper()


def _overall_label(report: PipelineReport) -> str:
    if report.cancelled:
        return "CANCELLED"
    return report.overall.upper()


def _cache_summary(report: PipelineReport) -> str:
    stats = report.cache_stats
    if stats is None:
        return ""
    return (
        f" (cache: {stats.hits} hits, {stats.builds} builds, "
        f"{stats.failures} failed builds)"
    )
