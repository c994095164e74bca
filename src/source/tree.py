# src/source/tree.py - v1
"""Load a project directory into a SourceSet.

Build outputs and version-control metadata are excluded by a fixed denylist
of path segments, so they never reach a fingerprint.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from depforge.core.errors import FilterError
from depforge.core.models import SourceFile, SourceSet

logger = logging.getLogger(__name__)

DEFAULT_DENYLIST: tuple[str, ...] = (
    ".git",
    ".hg",
    ".svn",
    "target",
    "result",
    ".direnv",
    "__pycache__",
)


def is_denied(relative_path: str, denylist: Iterable[str] = DEFAULT_DENYLIST) -> bool:
    """True if any segment of ``relative_path`` is in the denylist."""
    denied = set(denylist)
    return any(part in denied for part in relative_path.split("/"))


def load_source_tree(
    root: Path, denylist: Iterable[str] = DEFAULT_DENYLIST
) -> SourceSet:
    """Read every non-denied regular file under ``root``.

    Denied directories are pruned without being walked.

    Raises:
        FilterError: If ``root`` is not a directory or a file cannot be read.
    """
    root = Path(root).expanduser()
    if not root.is_dir():
        raise FilterError(f"Source root is not a directory: {root}")

    denied = set(denylist)
    files: list[SourceFile] = []
    pruned = 0

    def _raise(exc: OSError) -> None:
        raise FilterError(f"Unreadable source path {exc.filename}: {exc}") from exc

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        kept_dirs = [d for d in dirnames if d not in denied]
        pruned += len(dirnames) - len(kept_dirs)
        dirnames[:] = sorted(kept_dirs)
        base = Path(dirpath)
        for name in sorted(filenames):
            if name in denied:
                pruned += 1
                continue
            path = base / name
            if not path.is_file():
                continue
            rel = path.relative_to(root).as_posix()
            try:
                content = path.read_bytes()
            except OSError as exc:
                raise FilterError(f"Unreadable source path {rel}: {exc}") from exc
            files.append(SourceFile(path=rel, content=content))

    logger.info(
        "Loaded %d files from %s (%d denied entries pruned)",
        len(files), root, pruned,
    )
    return SourceSet(files=tuple(files))
