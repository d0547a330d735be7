"""Content-addressed artifact storage with locking, retention and aliases.

Storage layout: {base_path}/{kind}/{namespace}/{name}/{filename}

Publishing is atomic for readers: content is written to a temporary file in
the destination directory and renamed into place, and "latest" aliases are
swapped by renaming a freshly created symlink over the old one. A reader
therefore sees either the previous file or the new one, never a partial
write, also after a crash mid-write (stray temporaries are collected later).
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlparse, urlunparse

from filelock import FileLock, Timeout

from helmsource.core.digest import CANONICAL
from helmsource.models.artifacts import Artifact
from helmsource.models.repository import ObjectMeta

logger = logging.getLogger(__name__)

_LOCK_SUFFIX = ".lock"
_TMP_PREFIX = ".tmp-"


class StorageError(RuntimeError):
    """Base class for storage failures."""


class StorageLockError(StorageError):
    """Raised when the per-artifact lock cannot be acquired in time."""


class GarbageCollectionError(StorageError):
    """Raised when garbage collection fails or runs out of time.

    ``deleted`` lists the files removed before the failure.
    """

    def __init__(self, message: str, deleted: list[str] | None = None) -> None:
        super().__init__(message)
        self.deleted = deleted or []


class ArtifactStorage:
    """Local artifact store served under an advertised hostname.

    Parameters
    ----------
    base_path:
        Root directory for artifact storage.
    hostname:
        ``host[:port]`` under which ``base_path`` is served over HTTP.
    retention_ttl:
        Seconds a superseded artifact survives garbage collection.
    retention_records:
        Number of most recent files (current artifact included) kept per
        object regardless of age.
    lock_timeout:
        Seconds to wait for a per-artifact lock.
    """

    def __init__(
        self,
        base_path: Path,
        hostname: str,
        *,
        retention_ttl: float = 60.0,
        retention_records: int = 2,
        lock_timeout: float = 30.0,
    ) -> None:
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.hostname = hostname
        self.retention_ttl = retention_ttl
        self.retention_records = retention_records
        self.lock_timeout = lock_timeout

    # ------------------------------------------------------------------
    # Paths and URLs
    # ------------------------------------------------------------------

    @staticmethod
    def artifact_path(kind: str, namespace: str, name: str, filename: str) -> str:
        return f"{kind.lower()}/{namespace}/{name}/{filename}"

    def new_artifact_for(
        self, kind: str, meta: ObjectMeta, revision: str, filename: str
    ) -> Artifact:
        """Describe (without writing) an artifact for the given object."""
        path = self.artifact_path(kind, meta.namespace, meta.name, filename)
        artifact = Artifact(path=path, revision=revision)
        return self.set_artifact_url(artifact)

    def local_path(self, artifact: Artifact) -> Path:
        return self.base_path / artifact.path

    def set_artifact_url(self, artifact: Artifact) -> Artifact:
        """Return the artifact with its URL computed for the current hostname."""
        if not artifact.path:
            return artifact
        return artifact.model_copy(update={"url": f"http://{self.hostname}/{artifact.path}"})

    def set_hostname(self, url: str) -> str:
        """Rewrite the host of ``url`` to the current advertised hostname."""
        if not url:
            return ""
        parsed = urlparse(url)
        if not parsed.scheme:
            return ""
        return urlunparse(parsed._replace(netloc=self.hostname))

    # ------------------------------------------------------------------
    # Existence and directories
    # ------------------------------------------------------------------

    def artifact_exist(self, artifact: Artifact) -> bool:
        path = self.local_path(artifact)
        return path.is_file() and not path.is_symlink()

    def mkdir_all(self, artifact: Artifact) -> None:
        self.local_path(artifact).parent.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @contextmanager
    def lock(self, artifact: Artifact) -> Iterator[None]:
        """Hold the exclusive lock for an artifact path.

        The lock is released on every exit path of the ``with`` block.
        """
        lock_path = str(self.local_path(artifact)) + _LOCK_SUFFIX
        file_lock = FileLock(lock_path, timeout=self.lock_timeout)
        try:
            file_lock.acquire()
        except Timeout as exc:
            raise StorageLockError(
                f"timed out acquiring lock for '{artifact.path}'"
            ) from exc
        try:
            yield
        finally:
            file_lock.release()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def copy_from_path(self, artifact: Artifact, source: Path) -> Artifact:
        """Copy ``source`` into the artifact location atomically.

        Returns the artifact with digest, checksum, size and update time
        describing the stored file.
        """
        destination = self.local_path(artifact)
        hasher = hashlib.new(CANONICAL)
        size = 0
        fd, tmp_name = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=destination.parent)
        try:
            with os.fdopen(fd, "wb") as out, open(source, "rb") as src:
                for chunk in iter(lambda: src.read(1 << 16), b""):
                    hasher.update(chunk)
                    size += len(chunk)
                    out.write(chunk)
                out.flush()
                os.fsync(out.fileno())
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, destination)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        checksum = hasher.hexdigest()
        return artifact.model_copy(
            update={
                "digest": f"{CANONICAL}:{checksum}",
                "checksum": checksum,
                "size": size,
                "last_update_time": datetime.now(timezone.utc),
            }
        )

    def symlink(self, artifact: Artifact, link_name: str) -> str:
        """Point ``link_name`` next to the artifact at it; return the alias URL."""
        target = self.local_path(artifact)
        link = target.parent / link_name
        suffix = f"{os.getpid()}-{threading.get_ident()}-{time.monotonic_ns()}"
        tmp_link = target.parent / f"{_TMP_PREFIX}{link_name}-{suffix}"
        os.symlink(target.name, tmp_link)
        try:
            os.replace(tmp_link, link)
        except BaseException:
            tmp_link.unlink(missing_ok=True)
            raise
        alias_path = str(Path(artifact.path).parent / link_name)
        return f"http://{self.hostname}/{alias_path}"

    # ------------------------------------------------------------------
    # Retention and removal
    # ------------------------------------------------------------------

    def _garbage_files(self, artifact: Artifact, now: float) -> list[Path]:
        directory = self.local_path(artifact).parent
        if not directory.is_dir():
            return []
        current = self.local_path(artifact)
        candidates: list[tuple[float, Path]] = []
        temporaries: list[Path] = []
        for entry in directory.iterdir():
            if entry.is_symlink() or not entry.is_file():
                continue
            if entry.name.endswith(_LOCK_SUFFIX):
                continue
            try:
                mtime = entry.stat().st_mtime
            except FileNotFoundError:
                # Renamed or removed by a concurrent writer.
                continue
            if entry.name.startswith(_TMP_PREFIX):
                # In-flight writes are only collected once abandoned.
                if now - mtime > self.retention_ttl:
                    temporaries.append(entry)
                continue
            candidates.append((mtime, entry))
        candidates.sort(key=lambda item: item[0], reverse=True)

        garbage: list[Path] = list(temporaries)
        for index, (mtime, path) in enumerate(candidates):
            if path == current:
                continue
            expired = now - mtime > self.retention_ttl
            if index >= self.retention_records or expired:
                garbage.append(path)
        return garbage

    def garbage_collect(self, artifact: Artifact, timeout: float) -> list[str]:
        """Remove superseded files of the artifact's object.

        Keeps the current artifact, aliases and the newest
        ``retention_records`` files younger than ``retention_ttl``. Stops
        with ``GarbageCollectionError`` when ``timeout`` seconds elapse.
        """
        deadline = time.monotonic() + timeout
        deleted: list[str] = []
        try:
            garbage = self._garbage_files(artifact, time.time())
        except OSError as exc:
            raise GarbageCollectionError(
                f"failed to list files of '{artifact.path}': {exc}"
            ) from exc
        for path in garbage:
            if time.monotonic() > deadline:
                raise GarbageCollectionError(
                    f"garbage collection for '{artifact.path}' timed out after {timeout}s",
                    deleted,
                )
            try:
                path.unlink()
                Path(str(path) + _LOCK_SUFFIX).unlink(missing_ok=True)
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise GarbageCollectionError(
                    f"failed to remove '{path}': {exc}", deleted
                ) from exc
            deleted.append(str(path.relative_to(self.base_path)))
            logger.debug("garbage collected %s", path)
        return deleted

    def remove_all(self, artifact: Artifact) -> bool:
        """Remove every stored file of the artifact's object.

        Returns whether anything was removed.
        """
        directory = self.local_path(artifact).parent
        if not directory.exists():
            return False
        try:
            shutil.rmtree(directory)
        except OSError as exc:
            raise StorageError(f"failed to remove '{directory}': {exc}") from exc
        return True

    def stored_files(self, artifact: Artifact) -> list[str]:
        """List stored artifact files (aliases and locks excluded)."""
        directory = self.local_path(artifact).parent
        if not directory.is_dir():
            return []
        return sorted(
            str(p.relative_to(self.base_path))
            for p in directory.iterdir()
            if p.is_file()
            and not p.is_symlink()
            and not p.name.endswith(_LOCK_SUFFIX)
            and not p.name.startswith(_TMP_PREFIX)
        )
