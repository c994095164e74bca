# src/core/platform.py - v1
"""Platform tags.

A platform is an opaque string such as ``x86_64-linux``. Nothing in the
pipeline parses it; matching is plain string equality.
"""

from __future__ import annotations

import platform as _platform

# Systems a project is checked on by default.
DEFAULT_PLATFORMS: tuple[str, ...] = (
    "x86_64-linux",
    "aarch64-linux",
    "x86_64-darwin",
    "aarch64-darwin",
)

_ARCH_ALIASES: dict[str, str] = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "armv8": "aarch64",
}


def current_platform() -> str:
    """Return the tag for the running interpreter, e.g. ``aarch64-darwin``."""
    arch = _platform.machine().lower()
    arch = _ARCH_ALIASES.get(arch, arch) or "unknown"
    system = _platform.system().lower() or "unknown"
    return f"{arch}-{system}"


def validate_platform(tag: str) -> str:
    """Strip and reject empty tags."""
    tag = tag.strip()
    if not tag:
        raise ValueError("platform tag must be non-empty")
    return tag
