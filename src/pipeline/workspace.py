# src/pipeline/workspace.py - v1
"""On-disk views for external commands.

Tasks and the toolchain are external processes, so a SourceSet has to be
written to a directory and a borrowed artifact unpacked next to it. Each
task gets a private copy; the cached entry itself is never handed out as a
writable path.
"""

from __future__ import annotations

import contextlib
import gzip
import io
import logging
import os
import shutil
import tarfile
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from depforge.cache.models import ArtifactCacheEntry
from depforge.core.errors import FilterError
from depforge.core.models import SourceSet

logger = logging.getLogger(__name__)

ARTIFACT_BLOB_NAME = "dependencies.blob"
ARTIFACT_DIR_NAME = "dependencies"


@dataclass(frozen=True)
class Workspace:
    """Paths handed to one external command."""

    root: Path
    source_dir: Path
    artifact_file: Path | None = None
    artifact_dir: Path | None = None

    def variables(self) -> dict[str, str]:
        """Placeholder values for command and env templates."""
        return {
            "source": str(self.source_dir),
            "artifact": str(self.artifact_file) if self.artifact_file else "",
            "artifact_dir": str(self.artifact_dir) if self.artifact_dir else "",
            "workspace": str(self.root),
        }


def materialize_source(source_set: SourceSet, dest: Path) -> Path:
    """Write every file of ``source_set`` under ``dest``."""
    dest.mkdir(parents=True, exist_ok=True)
    for f in source_set.files:
        if ".." in f.path.split("/"):
            raise FilterError(f"Refusing to write path outside workspace: {f.path}")
        target = dest / f.path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(f.content)
    return dest


def materialize_artifact(entry: ArtifactCacheEntry, dest: Path) -> tuple[Path, Path]:
    """Write the artifact blob and, for tar archives, unpack it.

    Returns:
        (blob file, unpacked directory). The directory is empty when the
        artifact is not a tar archive.
    """
    dest.mkdir(parents=True, exist_ok=True)
    blob = dest / ARTIFACT_BLOB_NAME
    blob.write_bytes(entry.artifact)
    os.chmod(blob, 0o444)

    unpacked = dest / ARTIFACT_DIR_NAME
    unpacked.mkdir(exist_ok=True)
    if _is_tar(entry.artifact):
        with tarfile.open(fileobj=io.BytesIO(entry.artifact), mode="r:*") as tf:
            tf.extractall(unpacked, filter="data")
    return blob, unpacked


@contextlib.contextmanager
def task_workspace(
    name: str,
    source_set: SourceSet,
    entry: ArtifactCacheEntry | None = None,
    base_dir: Path | None = None,
) -> Iterator[Workspace]:
    """Temporary workspace holding ``source_set`` and an optional artifact copy."""
    root = Path(tempfile.mkdtemp(prefix=f"depforge-{name}-", dir=base_dir))
    try:
        source_dir = materialize_source(source_set, root / "source")
        artifact_file = artifact_dir = None
        if entry is not None:
            artifact_file, artifact_dir = materialize_artifact(entry, root / "artifact")
        yield Workspace(
            root=root,
            source_dir=source_dir,
            artifact_file=artifact_file,
            artifact_dir=artifact_dir,
        )
    finally:
        shutil.rmtree(root, ignore_errors=True)


def pack_directory(directory: Path) -> bytes:
    """Deterministic tar.gz of ``directory`` (sorted, zeroed times and owners)."""
    buf = io.BytesIO()
    with gzip.GzipFile(filename="", mode="wb", fileobj=buf, mtime=0) as gz:
        with tarfile.open(fileobj=gz, mode="w|") as tf:
            for path in sorted(directory.rglob("*")):
                rel = path.relative_to(directory).as_posix()
                info = tarfile.TarInfo(rel)
                info.mtime = 0
                info.uid = info.gid = 0
                info.uname = info.gname = ""
                if path.is_dir():
                    info.type = tarfile.DIRTYPE
                    info.mode = 0o755
                    tf.addfile(info)
                elif path.is_file():
                    data = path.read_bytes()
                    info.size = len(data)
                    info.mode = 0o755 if os.access(path, os.X_OK) else 0o644
                    tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def _is_tar(data: bytes) -> bool:
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*"):
            return True
    except (tarfile.TarError, EOFError, OSError):
        return False
