"""Shared test fixtures for helmsource."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from helmsource.controller import HelmRepositoryReconciler
from helmsource.core.artifact_store import ArtifactStorage
from helmsource.core.cache import IndexCache
from helmsource.core.client import InMemoryClient
from helmsource.core.events import MemoryEventRecorder
from helmsource.core.patch import SerialPatcher
from helmsource.core import conditions
from helmsource.index.client import IndexFetchError
from helmsource.index.options import ClientOptions
from helmsource.index.secrets import StaticSecretResolver
from helmsource.models.artifacts import Artifact
from helmsource.models.repository import (
    SOURCE_FINALIZER,
    HelmRepository,
    HelmRepositorySpec,
    ObjectMeta,
)
from helmsource.stages.base import ReconcileContext

INDEX_A = b"""apiVersion: v1
entries:
  nginx:
    - name: nginx
      version: 1.0.0
      urls:
        - https://charts.example.com/nginx-1.0.0.tgz
generated: "2024-01-01T00:00:00Z"
"""

INDEX_B = b"""apiVersion: v1
entries:
  nginx:
    - name: nginx
      version: 1.1.0
      urls:
        - https://charts.example.com/nginx-1.1.0.tgz
    - name: nginx
      version: 1.0.0
      urls:
        - https://charts.example.com/nginx-1.0.0.tgz
generated: "2024-02-01T00:00:00Z"
"""

REPO_URL = "https://charts.example.com"


class FakeIndexClient:
    """Serves settable index bytes and records every request."""

    schemes: tuple[str, ...] = ("http", "https")

    def __init__(self, content: bytes = INDEX_A) -> None:
        self.content = content
        self.error: Exception | None = None
        self.requests: list[tuple[str, ClientOptions]] = []

    def get(self, url: str, options: ClientOptions, *, max_size: int) -> bytes:
        self.requests.append((url, options))
        if self.error is not None:
            raise self.error
        if len(self.content) > max_size:
            raise IndexFetchError(f"index from {url} exceeds the maximum size")
        return self.content


class CountingStorage(ArtifactStorage):
    """ArtifactStorage that counts writes and purges."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.writes = 0
        self.purges = 0

    def copy_from_path(self, artifact: Artifact, source: Path) -> Artifact:
        self.writes += 1
        return super().copy_from_path(artifact, source)

    def remove_all(self, artifact: Artifact) -> bool:
        self.purges += 1
        return super().remove_all(artifact)


@pytest.fixture
def storage(tmp_path: Path) -> CountingStorage:
    """Provide a fresh artifact store in a temp directory."""
    return CountingStorage(tmp_path / "artifacts", "storage.test")


@pytest.fixture
def index_client() -> FakeIndexClient:
    return FakeIndexClient()


@pytest.fixture
def api_client() -> InMemoryClient:
    return InMemoryClient()


@pytest.fixture
def recorder() -> MemoryEventRecorder:
    return MemoryEventRecorder()


@pytest.fixture
def secrets() -> StaticSecretResolver:
    return StaticSecretResolver()


@pytest.fixture
def cache() -> IndexCache:
    return IndexCache(10)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_repository() -> Callable[..., HelmRepository]:
    """Factory fixture: build a HelmRepository with sensible defaults."""

    def _factory(
        name: str = "podinfo",
        namespace: str = "default",
        url: str = REPO_URL,
        *,
        finalizer: bool = False,
        **spec_overrides: Any,
    ) -> HelmRepository:
        return HelmRepository(
            metadata=ObjectMeta(
                name=name,
                namespace=namespace,
                finalizers=[SOURCE_FINALIZER] if finalizer else [],
            ),
            spec=HelmRepositorySpec(url=url, **spec_overrides),
        )

    return _factory


@pytest.fixture
def make_context(
    api_client: InMemoryClient,
) -> Callable[[HelmRepository], ReconcileContext]:
    """Factory fixture: store the object and wrap it in a stage context."""

    def _factory(obj: HelmRepository) -> ReconcileContext:
        api_client.create(obj)
        patcher = SerialPatcher(api_client, conditions.READY_SUMMARY.owned)
        return ReconcileContext(obj=obj, patcher=patcher)

    return _factory


@pytest.fixture
def reconciler(
    api_client: InMemoryClient,
    storage: CountingStorage,
    index_client: FakeIndexClient,
    secrets: StaticSecretResolver,
    recorder: MemoryEventRecorder,
    cache: IndexCache,
) -> HelmRepositoryReconciler:
    """Provide a reconciler wired to in-memory collaborators."""
    return HelmRepositoryReconciler(
        api_client,
        storage,
        index_client,
        secrets,
        recorder,
        cache=cache,
        cache_ttl=60.0,
    )


@pytest.fixture
def index_a() -> bytes:
    return INDEX_A


@pytest.fixture
def index_b() -> bytes:
    return INDEX_B


@pytest.fixture
def make_index_client() -> Callable[..., FakeIndexClient]:
    """Factory fixture: an index client serving the given bytes."""

    def _factory(content: bytes = INDEX_A) -> FakeIndexClient:
        return FakeIndexClient(content)

    return _factory
