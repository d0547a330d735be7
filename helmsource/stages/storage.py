"""Storage stage — keep the recorded artifact and the store consistent.

Runs first in every pass:
    - Garbage collect superseded artifacts (failures are only logged).
    - Drop the artifact reference when the file disappeared from storage.
    - Mark the object as progressing when there is no artifact yet.
    - Refresh the artifact URL and published URL for the current hostname,
      so a changed serving address needs no new artifact.
"""

from __future__ import annotations

import logging

from helmsource.core import conditions
from helmsource.core.artifact_store import ArtifactStorage, StorageError
from helmsource.core.errors import EventError, ReconcileError
from helmsource.core.events import EventRecorder, event_logf
from helmsource.core.reconcile import ReconcileResult
from helmsource.models.conditions import (
    ARTIFACT_IN_STORAGE_CONDITION,
    GARBAGE_COLLECTION_FAILED_REASON,
    GARBAGE_COLLECTION_SUCCEEDED_REASON,
    PROGRESSING_REASON,
)
from helmsource.models.events import EventType
from helmsource.models.repository import HelmRepository
from helmsource.stages.base import BaseStage, ReconcileContext

logger = logging.getLogger(__name__)


def garbage_collect(
    obj: HelmRepository,
    storage: ArtifactStorage,
    recorder: EventRecorder,
    timeout: float,
) -> None:
    """Garbage collect the object's artifacts.

    Removes everything but the current artifact, within the store's
    retention limits. When the object is being deleted or its type is no
    longer supported, every artifact is removed and the status is wiped.
    Raises ``EventError`` on failure.
    """
    if obj.is_deleting or not obj.is_default_type:
        everything = storage.new_artifact_for(obj.kind, obj.metadata, "", "*")
        try:
            removed = storage.remove_all(everything)
        except StorageError as exc:
            raise EventError(
                f"garbage collection for deleted resource failed: {exc}",
                GARBAGE_COLLECTION_FAILED_REASON,
            ) from exc
        if removed:
            event_logf(
                recorder,
                obj,
                EventType.TRACE,
                GARBAGE_COLLECTION_SUCCEEDED_REASON,
                "garbage collected artifacts for deleted resource",
            )
        obj.status.artifact = None
        obj.status.url = ""
        obj.status.conditions = []
        return

    artifact = obj.get_artifact()
    if artifact is None:
        return
    try:
        deleted = storage.garbage_collect(artifact, timeout)
    except StorageError as exc:
        raise EventError(
            f"garbage collection of artifacts failed: {exc}",
            GARBAGE_COLLECTION_FAILED_REASON,
        ) from exc
    if deleted:
        event_logf(
            recorder,
            obj,
            EventType.TRACE,
            GARBAGE_COLLECTION_SUCCEEDED_REASON,
            f"garbage collected {len(deleted)} artifacts",
        )


class StorageStage(BaseStage):
    """Stage 1: reconcile the recorded artifact against the store."""

    def __init__(
        self, storage: ArtifactStorage, recorder: EventRecorder, *, gc_timeout: float = 5.0
    ) -> None:
        self.storage = storage
        self.recorder = recorder
        self.gc_timeout = gc_timeout

    @property
    def stage_id(self) -> str:
        return "storage"

    @property
    def display_name(self) -> str:
        return "Storage"

    def execute(self, ctx: ReconcileContext) -> ReconcileResult:
        obj = ctx.obj

        try:
            garbage_collect(obj, self.storage, self.recorder, self.gc_timeout)
        except ReconcileError as exc:
            logger.info("[%s] %s", obj.key, exc)

        artifact_missing = False
        artifact = obj.get_artifact()
        if artifact is not None and not self.storage.artifact_exist(artifact):
            obj.status.artifact = None
            obj.status.url = ""
            artifact_missing = True
            conditions.delete(obj, ARTIFACT_IN_STORAGE_CONDITION)

        if obj.get_artifact() is None:
            message = "building artifact"
            if artifact_missing:
                message += ": disappeared from storage"
            conditions.progressive_status(True, obj, PROGRESSING_REASON, message)
            conditions.delete(obj, ARTIFACT_IN_STORAGE_CONDITION)
            ctx.patcher.patch(obj)
            return ReconcileResult.SUCCESS

        obj.status.artifact = self.storage.set_artifact_url(artifact)
        obj.status.url = self.storage.set_hostname(obj.status.url)
        return ReconcileResult.SUCCESS
