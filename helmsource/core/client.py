"""Resource API client: read and write HelmRepository objects.

``InMemoryClient`` mimics the API server's behaviour that matters to the
reconciler: reads and writes are deep copies, writes are guarded by an
optimistic ``resource_version`` check, and an object marked for deletion
disappears once its last finalizer is removed. ``ManifestFileClient``
persists a single object to a YAML manifest after every write.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import yaml

from helmsource.models.repository import HelmRepository

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """Raised when the requested object does not exist."""


class ConflictError(RuntimeError):
    """Raised when a write is based on a stale resource version."""


class ResourceClient(Protocol):
    def get(self, namespace: str, name: str) -> HelmRepository: ...

    def patch(self, obj: HelmRepository) -> None: ...


class InMemoryClient:
    """Thread-safe object store with optimistic concurrency."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: dict[str, HelmRepository] = {}

    @staticmethod
    def _key(namespace: str, name: str) -> str:
        return f"{namespace}/{name}"

    def create(self, obj: HelmRepository) -> HelmRepository:
        with self._lock:
            if obj.key in self._objects:
                raise ConflictError(f"object '{obj.key}' already exists")
            stored = obj.model_copy(deep=True)
            stored.metadata.resource_version = 1
            self._objects[obj.key] = stored
            obj.metadata.resource_version = 1
            return stored.model_copy(deep=True)

    def get(self, namespace: str, name: str) -> HelmRepository:
        with self._lock:
            stored = self._objects.get(self._key(namespace, name))
            if stored is None:
                raise NotFoundError(f"object '{namespace}/{name}' not found")
            return stored.model_copy(deep=True)

    def list(self) -> list[HelmRepository]:
        with self._lock:
            return [o.model_copy(deep=True) for o in self._objects.values()]

    def _write(self, obj: HelmRepository) -> None:
        stored = self._objects.get(obj.key)
        if stored is None:
            raise NotFoundError(f"object '{obj.key}' not found")
        if obj.metadata.resource_version != stored.metadata.resource_version:
            raise ConflictError(
                f"object '{obj.key}' was modified: resource version "
                f"{obj.metadata.resource_version} != {stored.metadata.resource_version}"
            )
        new_version = stored.metadata.resource_version + 1
        if obj.is_deleting and not obj.metadata.finalizers:
            del self._objects[obj.key]
            logger.debug("object %s removed", obj.key)
        else:
            updated = obj.model_copy(deep=True)
            updated.metadata.resource_version = new_version
            self._objects[obj.key] = updated
        obj.metadata.resource_version = new_version

    def patch(self, obj: HelmRepository) -> None:
        """Write finalizers and status of ``obj`` back to the store."""
        with self._lock:
            stored = self._objects.get(obj.key)
            if stored is None:
                raise NotFoundError(f"object '{obj.key}' not found")
            # Spec, generation and annotations belong to the user.
            merged = stored.model_copy(deep=True)
            merged.metadata.resource_version = obj.metadata.resource_version
            merged.metadata.finalizers = list(obj.metadata.finalizers)
            merged.status = obj.status.model_copy(deep=True)
            self._write(merged)
            obj.metadata.resource_version = merged.metadata.resource_version
            self._persist()

    def update(self, obj: HelmRepository) -> None:
        """Write a user edit, bumping the generation when the spec changed."""
        with self._lock:
            stored = self._objects.get(obj.key)
            if stored is None:
                raise NotFoundError(f"object '{obj.key}' not found")
            if obj.spec != stored.spec:
                obj.metadata.generation = stored.metadata.generation + 1
            self._write(obj)
            self._persist()

    def delete(self, namespace: str, name: str) -> None:
        """Request deletion; objects with finalizers are only marked."""
        with self._lock:
            key = self._key(namespace, name)
            stored = self._objects.get(key)
            if stored is None:
                raise NotFoundError(f"object '{key}' not found")
            if not stored.metadata.finalizers:
                del self._objects[key]
            elif stored.metadata.deletion_timestamp is None:
                stored.metadata.deletion_timestamp = datetime.now(timezone.utc)
                stored.metadata.resource_version += 1
            self._persist()

    def _persist(self) -> None:
        """Hook for subclasses that mirror the store somewhere durable."""


class ManifestFileClient(InMemoryClient):
    """Single-object client backed by a YAML manifest file."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        with open(self.path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        obj = HelmRepository.model_validate(data)
        obj.metadata.resource_version = 1
        self._objects[obj.key] = obj
        self.namespace = obj.metadata.namespace
        self.name = obj.metadata.name

    def load(self) -> HelmRepository:
        return self.get(self.namespace, self.name)

    def _persist(self) -> None:
        stored = self._objects.get(self._key(self.namespace, self.name))
        if stored is None:
            logger.info("object %s/%s removed; manifest left in place", self.namespace, self.name)
            return
        manifest = stored.to_manifest()
        manifest["metadata"].pop("resourceVersion", None)
        fd, tmp_name = tempfile.mkstemp(prefix=".manifest-", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                yaml.safe_dump(manifest, fh, sort_keys=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
