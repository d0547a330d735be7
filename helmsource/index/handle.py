"""Per-pass handle on a downloaded repository index.

An ``IndexHandle`` is created for one reconcile pass: it downloads the
index into a temporary file, computes digests of that file on demand,
validates it, and is cleared when the pass ends whatever the outcome.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from helmsource.core.digest import CANONICAL, Digest, digest_file
from helmsource.index.client import DEFAULT_MAX_INDEX_SIZE, RemoteIndexClient
from helmsource.index.options import ClientOptions

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.yaml"


class InvalidURLError(ValueError):
    """Raised when the repository URL cannot be parsed."""


class IndexConstructionError(RuntimeError):
    """Raised when no client can serve the repository URL."""


class IndexValidationError(ValueError):
    """Raised when the downloaded index is not a valid repository index."""


def index_url(repository_url: str) -> str:
    return repository_url.rstrip("/") + "/" + INDEX_FILENAME


class IndexHandle:
    """A repository URL bound to a client, plus the cached index file.

    Parameters
    ----------
    url:
        Repository base URL; ``index.yaml`` is fetched below it.
    client:
        Transport used to download the index.
    options:
        Remote access options (timeout, credentials, TLS).
    max_size:
        Upper bound on the downloaded index in bytes.
    """

    def __init__(
        self,
        url: str,
        client: RemoteIndexClient,
        options: ClientOptions,
        *,
        max_size: int = DEFAULT_MAX_INDEX_SIZE,
    ) -> None:
        try:
            parsed = urlparse(url)
            parsed.port  # raises ValueError on a malformed port
        except ValueError as exc:
            raise InvalidURLError(f"invalid URL '{url}': {exc}") from exc
        if not parsed.scheme or not parsed.netloc:
            raise InvalidURLError(f"invalid URL '{url}': scheme and host are required")
        if any(not ch.isprintable() for ch in url) or any(ch.isspace() for ch in parsed.netloc):
            raise InvalidURLError(f"invalid URL '{url}': invalid character in host or URL")
        if parsed.scheme not in client.schemes:
            raise IndexConstructionError(f"scheme '{parsed.scheme}' is not supported")

        self.url = url
        self.client = client
        self.options = options
        self.max_size = max_size
        self.path: Path | None = None
        self.index: dict[str, Any] | None = None
        self._digests: dict[str, Digest] = {}

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def cache_index(self) -> Path:
        """Download the index into a temporary file and remember its path."""
        data = self.client.get(index_url(self.url), self.options, max_size=self.max_size)
        fd, name = tempfile.mkstemp(prefix="index-", suffix=".yaml")
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        self.clear()
        self.path = Path(name)
        logger.debug("cached index of %s in %s (%d bytes)", self.url, name, len(data))
        return self.path

    # ------------------------------------------------------------------
    # Digest
    # ------------------------------------------------------------------

    def digest(self, algorithm: str = CANONICAL) -> Digest:
        """Digest of the cached index file, memoized per algorithm.

        Returns an empty digest when nothing is cached or the algorithm
        is not supported.
        """
        if self.path is None:
            return Digest("")
        if algorithm not in self._digests:
            try:
                self._digests[algorithm] = digest_file(self.path, algorithm)
            except ValueError:
                return Digest("")
        return self._digests[algorithm]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def load_from_path(self) -> dict[str, Any]:
        """Parse and validate the cached index file."""
        if self.path is None:
            raise IndexValidationError("no index has been cached")
        try:
            with open(self.path, "rb") as fh:
                data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise IndexValidationError(f"index is not valid YAML: {exc}") from exc
        self.index = validate_index(data)
        return self.index

    def clear(self) -> None:
        """Remove the cached file and forget the loaded index."""
        if self.path is not None:
            try:
                self.path.unlink(missing_ok=True)
            finally:
                self.path = None
        self.index = None
        self._digests.clear()


def validate_index(data: Any) -> dict[str, Any]:
    """Check the minimal shape of a repository index document."""
    if not isinstance(data, dict):
        raise IndexValidationError("index must be a mapping")
    if not data.get("apiVersion"):
        raise IndexValidationError("no API version specified")
    entries = data.get("entries")
    if entries is None:
        data["entries"] = {}
    elif not isinstance(entries, dict):
        raise IndexValidationError("index 'entries' must be a mapping")
    else:
        for name, versions in entries.items():
            if not isinstance(versions, list):
                raise IndexValidationError(f"entry '{name}' must be a list of versions")
    return data
