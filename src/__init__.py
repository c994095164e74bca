# src/__init__.py - v1
"""depforge: compile dependencies once, verify many times."""

from depforge.version import __version__

__all__ = ["__version__"]
