# src/core/models.py - v1
"""Core value types: SourceFile, SourceSet, Fingerprint.

A SourceSet is always held in path order so that the same files yield the
same fingerprint no matter how they were discovered.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from depforge.core.errors import FilterError


class SourceFile(BaseModel):
    """One project file, addressed by its POSIX path relative to the root."""

    model_config = ConfigDict(frozen=True)

    path: str
    content: bytes

    @field_validator("path")
    @classmethod
    def normalize_path(cls, v: str) -> str:
        path = v.replace("\\", "/")
        while path.startswith("./"):
            path = path[2:]
        if not path or path.startswith("/"):
            raise ValueError(f"path must be relative and non-empty: {v!r}")
        return path

    @property
    def name(self) -> str:
        """Basename of the file."""
        return self.path.rsplit("/", 1)[-1]

    @property
    def size(self) -> int:
        return len(self.content)


class SourceSet(BaseModel):
    """Deterministically ordered view of project files."""

    model_config = ConfigDict(frozen=True)

    files: tuple[SourceFile, ...] = ()

    @field_validator("files")
    @classmethod
    def sort_files(cls, v: tuple[SourceFile, ...]) -> tuple[SourceFile, ...]:
        ordered = tuple(sorted(v, key=lambda f: f.path))
        for prev, cur in zip(ordered, ordered[1:]):
            if prev.path == cur.path:
                raise FilterError(f"Duplicate path in source set: {cur.path}")
        return ordered

    @classmethod
    def from_files(cls, files: Iterable[SourceFile]) -> SourceSet:
        return cls(files=tuple(files))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, bytes | str]) -> SourceSet:
        """Build a SourceSet from ``{path: content}``; str content is UTF-8 encoded."""
        files = []
        for path, content in mapping.items():
            if isinstance(content, str):
                content = content.encode("utf-8")
            files.append(SourceFile(path=path, content=content))
        return cls(files=tuple(files))

    def __len__(self) -> int:
        return len(self.files)

    def __contains__(self, path: object) -> bool:
        return any(f.path == path for f in self.files)

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    @property
    def total_bytes(self) -> int:
        return sum(f.size for f in self.files)

    def get(self, path: str) -> SourceFile | None:
        """Return the file at ``path`` or None."""
        for f in self.files:
            if f.path == path:
                return f
        return None


class Fingerprint(BaseModel):
    """Content-derived cache key for a SourceSet plus lock state."""

    model_config = ConfigDict(frozen=True)

    digest: str = Field(min_length=64, max_length=64)
    algorithm: str = "sha256"
    file_count: int = 0
    has_lock: bool = False

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Fingerprint):
            return self.digest == other.digest and self.algorithm == other.algorithm
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.algorithm, self.digest))

    def __str__(self) -> str:
        return self.digest

    @property
    def short(self) -> str:
        """First 12 hex chars, for logs and reports."""
        return self.digest[:12]
