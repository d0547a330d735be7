"""Tests for digest parsing, computation and legacy revision handling."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from helmsource.core.digest import (
    CANONICAL,
    Digest,
    InvalidDigestError,
    digest_bytes,
    digest_file,
    human_size,
    transform_legacy_revision,
)


class TestDigest:
    """Digest string parsing and validation."""

    def test_algorithm_and_hex(self):
        d = Digest("sha256:" + "a" * 64)
        assert d.algorithm == "sha256"
        assert d.hex == "a" * 64
        assert d.is_valid()

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "a" * 64,
            "md5:" + "a" * 32,
            "sha256:" + "a" * 63,
            "sha256:" + "A" * 64,
            "sha512:" + "a" * 64,
        ],
    )
    def test_invalid_digests(self, value: str):
        assert not Digest(value).is_valid()
        with pytest.raises(InvalidDigestError):
            Digest(value).validate()

    def test_digest_is_a_string(self):
        d = digest_bytes(b"hello")
        assert isinstance(d, str)
        assert d == "sha256:" + hashlib.sha256(b"hello").hexdigest()


class TestComputation:
    """Digests over bytes and files."""

    @pytest.mark.parametrize("algorithm", ["sha256", "sha384", "sha512"])
    def test_file_matches_bytes(self, tmp_path: Path, algorithm: str):
        path = tmp_path / "index.yaml"
        path.write_bytes(b"apiVersion: v1\n")
        assert digest_file(path, algorithm) == digest_bytes(b"apiVersion: v1\n", algorithm)
        assert digest_file(path, algorithm).algorithm == algorithm

    def test_unsupported_algorithm_rejected(self):
        with pytest.raises(InvalidDigestError):
            digest_bytes(b"x", "md5")

    def test_canonical_is_sha256(self):
        assert CANONICAL == "sha256"


class TestLegacyRevision:
    """Rewriting of revisions recorded before digests carried an algorithm."""

    def test_bare_sha256_hex(self):
        hex_value = "b" * 64
        assert transform_legacy_revision(hex_value) == f"sha256:{hex_value}"

    def test_bare_sha512_hex(self):
        hex_value = "c" * 128
        assert transform_legacy_revision(hex_value) == f"sha512:{hex_value}"

    def test_ref_with_sha1(self):
        sha1 = "d" * 40
        assert transform_legacy_revision(f"main/{sha1}") == f"main@sha1:{sha1}"

    def test_already_transformed_unchanged(self):
        value = "sha256:" + "e" * 64
        assert transform_legacy_revision(value) == value

    @pytest.mark.parametrize("value", ["", "not-a-digest", "main/abc"])
    def test_other_values_unchanged(self, value: str):
        assert transform_legacy_revision(value) == value


class TestHumanSize:
    def test_sizes(self):
        assert human_size(512) == "512B"
        assert human_size(1500) == "1.5kB"
        assert human_size(2_000_000) == "2MB"
