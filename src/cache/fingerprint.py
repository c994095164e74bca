# src/cache/fingerprint.py - v2
"""Fingerprint engine: a stable SHA-256 over a normalized SourceSet and lock state.

Each file contributes ``len(path) | path | len(content) | content`` with
8-byte big-endian lengths, so no two distinct file lists can produce the same
byte stream. The lock section is tagged so "no lock" and "empty lock" differ.
"""

from __future__ import annotations

import hashlib
import struct

from depforge.core.models import Fingerprint, SourceSet

_LEN = struct.Struct(">Q")
_DOMAIN = b"depforge-fingerprint-v1\x00"


def compute_fingerprint(
    source_set: SourceSet,
    lock_content: bytes | None = None,
) -> Fingerprint:
    """Compute the cache key for ``source_set`` and the lock file content.

    Args:
        source_set: Normalized (sorted, already filtered) project view.
        lock_content: Raw lock file bytes, or None when the project has none.

    Returns:
        Fingerprint whose digest depends only on (path, content) pairs and lock.
    """
    h = hashlib.sha256(_DOMAIN)
    for f in source_set.files:
        path_bytes = f.path.encode("utf-8")
        h.update(_LEN.pack(len(path_bytes)))
        h.update(path_bytes)
        h.update(_LEN.pack(len(f.content)))
        h.update(f.content)

    if lock_content is None:
        h.update(b"nolock")
    else:
        h.update(b"lock")
        h.update(_LEN.pack(len(lock_content)))
        h.update(lock_content)

    return Fingerprint(
        digest=h.hexdigest(),
        file_count=len(source_set),
        has_lock=lock_content is not None,
    )


def artifact_digest(artifact: bytes) -> str:
    """SHA-256 of a built artifact blob, recorded in cache metadata."""
    return hashlib.sha256(artifact).hexdigest()
