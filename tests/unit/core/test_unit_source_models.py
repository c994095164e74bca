# tests/unit/core/test_unit_source_models.py - v1
"""Tests for core/models.py - SourceFile, SourceSet, Fingerprint."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from depforge.core.errors import FilterError
from depforge.core.models import Fingerprint, SourceFile, SourceSet


class TestSourceFile:
    def test_normalizes_separators(self):
        f = SourceFile(path="src\\lib.rs", content=b"")
        assert f.path == "src/lib.rs"

    def test_strips_leading_dot_slash(self):
        assert SourceFile(path="./Cargo.toml", content=b"").path == "Cargo.toml"

    def test_rejects_absolute(self):
        with pytest.raises(ValidationError):
            SourceFile(path="/etc/passwd", content=b"")

    def test_rejects_empty(self):
        with pytest.raises(ValidationError):
            SourceFile(path="", content=b"")

    def test_name_and_size(self):
        f = SourceFile(path="crates/core/Cargo.toml", content=b"abc")
        assert f.name == "Cargo.toml"
        assert f.size == 3


class TestSourceSet:
    def test_sorted_by_path(self):
        s = SourceSet.from_files([
            SourceFile(path="b.rs", content=b""),
            SourceFile(path="a.rs", content=b""),
            SourceFile(path="Cargo.toml", content=b""),
        ])
        assert s.paths == ["Cargo.toml", "a.rs", "b.rs"]

    def test_discovery_order_irrelevant(self):
        a = SourceSet.from_mapping({"x": b"1", "y": b"2"})
        b = SourceSet.from_mapping({"y": b"2", "x": b"1"})
        assert a == b

    def test_duplicate_paths_rejected(self):
        with pytest.raises(FilterError, match="Duplicate"):
            SourceSet.from_files([
                SourceFile(path="a.rs", content=b"1"),
                SourceFile(path="./a.rs", content=b"2"),
            ])

    def test_empty_is_valid(self):
        s = SourceSet()
        assert len(s) == 0
        assert s.total_bytes == 0

    def test_from_mapping_encodes_str(self):
        s = SourceSet.from_mapping({"a.txt": "é"})
        assert s.get("a.txt").content == "é".encode("utf-8")

    def test_contains_and_get(self, cargo_project):
        assert "Cargo.toml" in cargo_project
        assert "missing.rs" not in cargo_project
        assert cargo_project.get("missing.rs") is None

    def test_frozen(self, cargo_project):
        with pytest.raises(ValidationError):
            cargo_project.files = ()


class TestFingerprint:
    def test_equality_by_digest(self):
        a = Fingerprint(digest="a" * 64, file_count=1)
        b = Fingerprint(digest="a" * 64, file_count=2, has_lock=True)
        assert a == b
        assert hash(a) == hash(b)

    def test_digest_length_enforced(self):
        with pytest.raises(ValidationError):
            Fingerprint(digest="abc")

    def test_str_and_short(self):
        fp = Fingerprint(digest="0123456789ab" + "f" * 52)
        assert str(fp) == fp.digest
        assert fp.short == "0123456789ab"
