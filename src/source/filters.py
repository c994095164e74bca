# src/source/filters.py - v1
"""Declarative source predicates and the pure ``filter_source`` operation.

Predicates are a tagged union keyed on ``kind`` so a task catalog can be
written as plain data (TOML / JSON) and validated up front. Filtering itself
never fails for a valid predicate and an empty result is a valid SourceSet.
"""

from __future__ import annotations

import fnmatch
import logging
from abc import abstractmethod
from collections.abc import Iterable, Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from depforge.core.errors import FilterError
from depforge.core.models import SourceSet

logger = logging.getLogger(__name__)


class BasePredicate(BaseModel):
    """Abstract predicate over relative file paths."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    @abstractmethod
    def matches(self, path: str) -> bool:
        """True if ``path`` is kept."""


class EverythingFilter(BasePredicate):
    """Keep every file."""

    kind: Literal["everything"] = "everything"

    def matches(self, path: str) -> bool:
        return True


class ExtensionFilter(BasePredicate):
    """Keep files whose name ends with one of ``extensions`` (case-insensitive)."""

    kind: Literal["extensions"] = "extensions"
    extensions: tuple[str, ...]

    @field_validator("extensions")
    @classmethod
    def check_extensions(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("extensions must not be empty")
        for ext in v:
            if not ext.startswith(".") or len(ext) < 2:
                raise ValueError(f"extension must look like '.rs', got {ext!r}")
        return tuple(ext.lower() for ext in v)

    def matches(self, path: str) -> bool:
        lowered = path.lower()
        return any(lowered.endswith(ext) for ext in self.extensions)


class FilenameFilter(BasePredicate):
    """Keep files whose basename is one of ``names`` (manifests, lock files)."""

    kind: Literal["filenames"] = "filenames"
    names: tuple[str, ...]

    @field_validator("names")
    @classmethod
    def check_names(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("names must not be empty")
        for name in v:
            if not name or "/" in name:
                raise ValueError(f"file name must be a bare basename, got {name!r}")
        return v

    def matches(self, path: str) -> bool:
        return path.rsplit("/", 1)[-1] in self.names


class GlobFilter(BasePredicate):
    """Keep files whose relative path matches one of ``patterns`` (fnmatch)."""

    kind: Literal["globs"] = "globs"
    patterns: tuple[str, ...]

    @field_validator("patterns")
    @classmethod
    def check_patterns(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("patterns must not be empty")
        if any(not p.strip() for p in v):
            raise ValueError("glob patterns must be non-empty")
        return v

    def matches(self, path: str) -> bool:
        return any(fnmatch.fnmatchcase(path, p) for p in self.patterns)


class AnyOfFilter(BasePredicate):
    """Union of predicates."""

    kind: Literal["any_of"] = "any_of"
    predicates: tuple[SourcePredicate, ...]

    @field_validator("predicates")
    @classmethod
    def check_predicates(cls, v: tuple[Any, ...]) -> tuple[Any, ...]:
        if not v:
            raise ValueError("any_of needs at least one predicate")
        return v

    def matches(self, path: str) -> bool:
        return any(p.matches(path) for p in self.predicates)


class AllOfFilter(BasePredicate):
    """Intersection of predicates."""

    kind: Literal["all_of"] = "all_of"
    predicates: tuple[SourcePredicate, ...]

    @field_validator("predicates")
    @classmethod
    def check_predicates(cls, v: tuple[Any, ...]) -> tuple[Any, ...]:
        if not v:
            raise ValueError("all_of needs at least one predicate")
        return v

    def matches(self, path: str) -> bool:
        return all(p.matches(path) for p in self.predicates)


class NotFilter(BasePredicate):
    """Complement of a predicate."""

    kind: Literal["not"] = "not"
    predicate: SourcePredicate

    def matches(self, path: str) -> bool:
        return not self.predicate.matches(path)


SourcePredicate = Annotated[
    Union[
        EverythingFilter,
        ExtensionFilter,
        FilenameFilter,
        GlobFilter,
        AnyOfFilter,
        AllOfFilter,
        NotFilter,
    ],
    Field(discriminator="kind"),
]

AnyOfFilter.model_rebuild()
AllOfFilter.model_rebuild()
NotFilter.model_rebuild()

_PREDICATE_ADAPTER: TypeAdapter[Any] = TypeAdapter(SourcePredicate)


def parse_predicate(data: Mapping[str, Any] | BasePredicate) -> BasePredicate:
    """Validate a predicate given as data (e.g. from a TOML catalog).

    Raises:
        FilterError: If the predicate is malformed or of unknown kind.
    """
    if isinstance(data, BasePredicate):
        return data
    try:
        return _PREDICATE_ADAPTER.validate_python(dict(data))
    except (ValidationError, TypeError, ValueError) as exc:
        raise FilterError(f"Malformed source predicate {data!r}: {exc}") from exc


def filter_source(full_source: SourceSet, predicate: BasePredicate) -> SourceSet:
    """Return the subset of ``full_source`` selected by ``predicate``.

    Raises:
        FilterError: If ``predicate`` is not a source predicate.
    """
    if not isinstance(predicate, BasePredicate):
        raise FilterError(f"Not a source predicate: {predicate!r}")
    kept = [f for f in full_source.files if predicate.matches(f.path)]
    logger.debug(
        "Filter %s kept %d/%d files", predicate.kind, len(kept), len(full_source)  # type: ignore[attr-defined]
    )
    return SourceSet(files=tuple(kept))


def dependency_predicate(
    manifest_names: Iterable[str], lock_names: Iterable[str]
) -> FilenameFilter:
    """Predicate selecting only manifest and lock files (no application code)."""
    names = tuple(dict.fromkeys([*manifest_names, *lock_names]))
    return FilenameFilter(names=names)


def find_lock_content(source: SourceSet, lock_names: Iterable[str]) -> bytes | None:
    """Return the content of the lock file, preferring one at the project root."""
    names = list(lock_names)
    for name in names:
        root_file = source.get(name)
        if root_file is not None:
            return root_file.content
    for f in source.files:
        if f.name in names:
            return f.content
    return None
