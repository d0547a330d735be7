"""Artifact stage — persist the fetched index as a content-addressed artifact.

The object's artifact reference only changes after the write fully
succeeds. The stable ``index.yaml`` alias is refreshed afterwards; when that
fails the published URL keeps its previous value.
"""

from __future__ import annotations

import logging

from helmsource.core import conditions
from helmsource.core.artifact_store import ArtifactStorage, StorageLockError
from helmsource.core.cache import CacheFullError, IndexCache
from helmsource.core.errors import EventError
from helmsource.core.events import EventRecorder, event_logf
from helmsource.core.reconcile import ReconcileResult
from helmsource.models.artifacts import Artifact
from helmsource.models.conditions import (
    ARCHIVE_OPERATION_FAILED_REASON,
    ARTIFACT_IN_STORAGE_CONDITION,
    ARTIFACT_OUTDATED_CONDITION,
    ARTIFACT_UP_TO_DATE_REASON,
    CACHE_OPERATION_FAILED_REASON,
    DIR_CREATION_FAILED_REASON,
    FAILED_REASON,
    STORAGE_OPERATION_FAILED_CONDITION,
    SUCCEEDED_REASON,
    SYMLINK_UPDATE_FAILED_REASON,
)
from helmsource.models.events import EventType
from helmsource.models.repository import HelmRepository
from helmsource.stages.base import BaseStage, ReconcileContext

logger = logging.getLogger(__name__)

ALIAS_NAME = "index.yaml"


class ArtifactStage(BaseStage):
    """Stage 3: write the candidate artifact and publish it."""

    def __init__(
        self,
        storage: ArtifactStorage,
        recorder: EventRecorder,
        *,
        cache: IndexCache | None = None,
        cache_ttl: float = 900.0,
    ) -> None:
        self.storage = storage
        self.recorder = recorder
        self.cache = cache
        self.cache_ttl = cache_ttl

    @property
    def stage_id(self) -> str:
        return "artifact"

    @property
    def display_name(self) -> str:
        return "Artifact"

    def execute(self, ctx: ReconcileContext) -> ReconcileResult:
        obj = ctx.obj
        candidate = ctx.artifact
        if candidate is None:
            # The source stage always fills the slot; nothing to store otherwise.
            return ReconcileResult.SUCCESS

        try:
            return self._store(ctx, obj, candidate)
        finally:
            current = obj.get_artifact()
            if current is not None and current.has_revision(candidate.revision):
                conditions.delete(obj, ARTIFACT_OUTDATED_CONDITION)
                conditions.mark_true(
                    obj,
                    ARTIFACT_IN_STORAGE_CONDITION,
                    SUCCEEDED_REASON,
                    f"stored artifact: revision '{candidate.revision}'",
                )
            if ctx.index is not None:
                try:
                    ctx.index.clear()
                except OSError as exc:
                    logger.warning("[%s] failed to remove cached index: %s", obj.key, exc)

    def _store(
        self, ctx: ReconcileContext, obj: HelmRepository, candidate: Artifact
    ) -> ReconcileResult:
        current = obj.get_artifact()
        if (
            current is not None
            and current.has_revision(candidate.revision)
            and current.has_checksum(candidate.checksum)
        ):
            if self.cache is not None:
                self.cache.set_expiration(candidate.path, self.cache_ttl)
            event_logf(
                self.recorder,
                obj,
                EventType.TRACE,
                ARTIFACT_UP_TO_DATE_REASON,
                f"artifact up-to-date with remote revision: '{candidate.revision}'",
            )
            return ReconcileResult.SUCCESS

        if ctx.index is None or ctx.index.path is None:
            raise EventError("no fetched index to store", FAILED_REASON)

        try:
            self.storage.mkdir_all(candidate)
        except OSError as exc:
            error = EventError(
                f"failed to create artifact directory: {exc}", DIR_CREATION_FAILED_REASON
            )
            conditions.mark_true(
                obj, STORAGE_OPERATION_FAILED_CONDITION, error.reason, error.message
            )
            raise error from exc

        try:
            with self.storage.lock(candidate):
                try:
                    stored = self.storage.copy_from_path(candidate, ctx.index.path)
                except OSError as exc:
                    error = EventError(
                        f"unable to save artifact to storage: {exc}",
                        ARCHIVE_OPERATION_FAILED_REASON,
                    )
                    conditions.mark_true(
                        obj, STORAGE_OPERATION_FAILED_CONDITION, error.reason, error.message
                    )
                    raise error from exc
        except StorageLockError as exc:
            raise EventError(
                f"failed to acquire lock for artifact: {exc}", FAILED_REASON
            ) from exc

        obj.status.artifact = stored.model_copy(deep=True)

        if self.cache is not None and ctx.index.index is not None:
            try:
                self.cache.set(stored.path, ctx.index.index, self.cache_ttl)
            except CacheFullError as exc:
                event_logf(
                    self.recorder,
                    obj,
                    EventType.TRACE,
                    CACHE_OPERATION_FAILED_REASON,
                    f"failed to cache index: {exc}",
                )

        try:
            obj.status.url = self.storage.symlink(stored, ALIAS_NAME)
        except OSError as exc:
            event_logf(
                self.recorder,
                obj,
                EventType.TRACE,
                SYMLINK_UPDATE_FAILED_REASON,
                f"failed to update status URL symlink: {exc}",
            )

        conditions.delete(obj, STORAGE_OPERATION_FAILED_CONDITION)
        return ReconcileResult.SUCCESS
