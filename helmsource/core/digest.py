"""Content digests for revisions, checksums and idempotency decisions.

A digest string has the form ``<algorithm>:<hex>``. ``sha256`` is the
canonical algorithm used for new revisions; ``sha384`` and ``sha512`` are
recognized so revisions recorded with them can still be compared.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

CANONICAL = "sha256"

# algorithm -> hex length
SUPPORTED_ALGORITHMS: dict[str, int] = {
    "sha256": 64,
    "sha384": 96,
    "sha512": 128,
}

_HEX_RE = re.compile(r"^[a-f0-9]+$")
_SHA1_HEX_LEN = 40


class InvalidDigestError(ValueError):
    """Raised when a digest string is malformed or uses an unknown algorithm."""


class Digest(str):
    """A ``<algorithm>:<hex>`` digest string."""

    @property
    def algorithm(self) -> str:
        return self.partition(":")[0]

    @property
    def hex(self) -> str:
        return self.partition(":")[2]

    def validate(self) -> None:
        """Raise ``InvalidDigestError`` unless the digest is well-formed."""
        algorithm, sep, encoded = self.partition(":")
        if not sep:
            raise InvalidDigestError(f"invalid digest {str(self)!r}: missing algorithm")
        expected_len = SUPPORTED_ALGORITHMS.get(algorithm)
        if expected_len is None:
            raise InvalidDigestError(f"unsupported digest algorithm {algorithm!r}")
        if len(encoded) != expected_len or not _HEX_RE.match(encoded):
            raise InvalidDigestError(f"invalid {algorithm} digest {encoded!r}")

    def is_valid(self) -> bool:
        try:
            self.validate()
        except InvalidDigestError:
            return False
        return True


def _hasher(algorithm: str):
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise InvalidDigestError(f"unsupported digest algorithm {algorithm!r}")
    return hashlib.new(algorithm)


def digest_bytes(data: bytes, algorithm: str = CANONICAL) -> Digest:
    h = _hasher(algorithm)
    h.update(data)
    return Digest(f"{algorithm}:{h.hexdigest()}")


def digest_file(path: Path, algorithm: str = CANONICAL, chunk_size: int = 1 << 16) -> Digest:
    h = _hasher(algorithm)
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(chunk_size), b""):
            h.update(chunk)
    return Digest(f"{algorithm}:{h.hexdigest()}")


def _algorithm_for_hex(value: str) -> str:
    if not _HEX_RE.match(value):
        return ""
    if len(value) == _SHA1_HEX_LEN:
        return "sha1"
    for algorithm, length in SUPPORTED_ALGORITHMS.items():
        if len(value) == length:
            return algorithm
    return ""


def transform_legacy_revision(rev: str) -> str:
    """Rewrite a legacy revision string into the digest format.

    Legacy revisions were recorded as a bare hex checksum or as
    ``<ref>/<sha1>``. Values already carrying an algorithm are returned as-is.
    """
    if not rev or ":" in rev:
        return rev
    if "/" in rev:
        ref, _, sha = rev.rpartition("/")
        if _algorithm_for_hex(sha) == "sha1":
            return f"{ref}@sha1:{sha}"
        return rev
    algorithm = _algorithm_for_hex(rev)
    if algorithm:
        return f"{algorithm}:{rev}"
    return rev


def human_size(size: float) -> str:
    """Decimal human-readable size with four significant digits: ``1.5kB``."""
    units = ["B", "kB", "MB", "GB", "TB", "PB"]
    i = 0
    while size >= 1000 and i < len(units) - 1:
        size /= 1000.0
        i += 1
    return f"{size:.4g}{units[i]}"
