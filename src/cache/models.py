# src/cache/models.py - v2
"""Cache domain models: ArtifactMetadata, ArtifactCacheEntry, CacheStats."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

from depforge.core.models import Fingerprint


def cache_key(fingerprint: Fingerprint, platform: str) -> str:
    """Store key for a (fingerprint, platform) pair, safe as a file name.

    The platform is percent-encoded, so distinct tags never share a key.
    """
    safe_platform = quote(platform, safe="")
    return f"{fingerprint.digest}--{safe_platform}"


class ArtifactMetadata(BaseModel):
    """Provenance of a compiled dependency closure."""

    model_config = ConfigDict(frozen=True)

    toolchain_version: str = "unknown"
    builder: str = ""
    build_duration_ms: int = 0
    artifact_sha256: str = ""
    artifact_size: int = 0


class ArtifactCacheEntry(BaseModel):
    """Compiled dependency closure for one (fingerprint, platform).

    Immutable once written; a new dependency set produces a new key rather
    than a mutation of an existing entry.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    fingerprint: Fingerprint
    platform: str
    artifact: bytes = Field(repr=False)
    metadata: ArtifactMetadata = Field(default_factory=ArtifactMetadata)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def header_json(self) -> str:
        """Serialize everything except the artifact blob."""
        return self.model_dump_json(exclude={"artifact"}, indent=2)

    @classmethod
    def from_header(cls, header: str, artifact: bytes) -> ArtifactCacheEntry:
        """Rebuild an entry from ``header_json()`` output plus the blob."""
        data = json.loads(header)
        data["artifact"] = artifact
        return cls.model_validate(data)


class CacheStats(BaseModel):
    """Counters for one DependencyArtifactCache instance."""

    hits: int = 0
    misses: int = 0
    builds: int = 0
    failures: int = 0
    shared_waits: int = 0


class BuiltArtifact(BaseModel):
    """What a toolchain hands back: the artifact bytes plus provenance."""

    artifact: bytes = Field(repr=False)
    toolchain_version: str = "unknown"
    builder: str = ""
