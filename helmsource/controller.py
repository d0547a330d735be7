"""HelmRepository reconciler — the per-object reconcile state machine.

One ``reconcile()`` call is one pass over one object:

1. add the tracking finalizer (and requeue) when it is missing;
2. purge artifacts when the object is being deleted or its type is no
   longer the supported default;
3. skip suspended objects entirely;
4. otherwise run the storage, source and artifact stages in order.

Whatever happens, the final status is summarized into Ready and patched
exactly once, and the returned ``ReconcileOutcome`` carries the schedule
for the next pass. No exception escapes ``reconcile()``.
"""

from __future__ import annotations

import logging

from helmsource.config import ControllerConfig
from helmsource.core import conditions
from helmsource.core.artifact_store import ArtifactStorage
from helmsource.core.cache import IndexCache
from helmsource.core.client import ConflictError, NotFoundError, ResourceClient
from helmsource.core.digest import human_size
from helmsource.core.errors import EventError, ReconcileError, StallingError
from helmsource.core.events import EventRecorder, event_logf
from helmsource.core.jitter import jitter
from helmsource.core.patch import SerialPatcher
from helmsource.core.reconcile import (
    ControllerResult,
    ReconcileOutcome,
    ReconcileResult,
    compute_reconcile_result,
    lowest_requeuing_result,
)
from helmsource.index.client import DEFAULT_MAX_INDEX_SIZE, RemoteIndexClient
from helmsource.index.secrets import SecretResolver
from helmsource.models.conditions import (
    FAILED_REASON,
    NEW_ARTIFACT_REASON,
    PROGRESSING_REASON,
    READY_CONDITION,
    SUCCEEDED_REASON,
    ConditionStatus,
)
from helmsource.models.events import (
    CHECKSUM_ANNOTATION,
    DIGEST_ANNOTATION,
    REVISION_ANNOTATION,
    EventType,
)
from helmsource.models.repository import HelmRepository
from helmsource.stages import ArtifactStage, BaseStage, ReconcileContext, SourceStage, StorageStage
from helmsource.stages.storage import garbage_collect

logger = logging.getLogger(__name__)


class HelmRepositoryReconciler:
    """Reconciles HelmRepository objects into stored index artifacts.

    Parameters
    ----------
    client:
        API client used to read and patch objects.
    storage:
        Artifact store the indexes are written to.
    index_client:
        Transport used to download repository indexes.
    secrets:
        Resolves the credentials referenced by ``spec.secretRef``.
    recorder:
        Receives change notifications.
    cache:
        Optional cache of parsed indexes, keyed by artifact path.
    """

    def __init__(
        self,
        client: ResourceClient,
        storage: ArtifactStorage,
        index_client: RemoteIndexClient,
        secrets: SecretResolver,
        recorder: EventRecorder,
        *,
        cache: IndexCache | None = None,
        cache_ttl: float = 900.0,
        requeue_jitter: float = 0.0,
        gc_timeout: float = 5.0,
        max_index_size: int = DEFAULT_MAX_INDEX_SIZE,
        controller_name: str = "helmsource-controller",
    ) -> None:
        self.client = client
        self.storage = storage
        self.recorder = recorder
        self.requeue_jitter = requeue_jitter
        self.gc_timeout = gc_timeout
        self.controller_name = controller_name
        self.stages: list[BaseStage] = [
            StorageStage(storage, recorder, gc_timeout=gc_timeout),
            SourceStage(storage, index_client, secrets, max_index_size=max_index_size),
            ArtifactStage(storage, recorder, cache=cache, cache_ttl=cache_ttl),
        ]

    @classmethod
    def from_config(
        cls,
        config: ControllerConfig,
        client: ResourceClient,
        index_client: RemoteIndexClient,
        secrets: SecretResolver,
        recorder: EventRecorder,
    ) -> HelmRepositoryReconciler:
        """Build a reconciler wired from process configuration."""
        storage = ArtifactStorage(
            config.storage_path,
            config.storage_adv_addr,
            retention_ttl=config.artifact_retention_ttl,
            retention_records=config.artifact_retention_records,
            lock_timeout=config.lock_timeout_seconds,
        )
        cache = IndexCache(config.index_cache_max_size) if config.cache_enabled else None
        return cls(
            client,
            storage,
            index_client,
            secrets,
            recorder,
            cache=cache,
            cache_ttl=config.index_cache_ttl_seconds,
            requeue_jitter=config.requeue_jitter,
            gc_timeout=config.gc_timeout_seconds,
            max_index_size=config.max_index_size,
            controller_name=config.controller_name,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def reconcile(self, namespace: str, name: str) -> ReconcileOutcome:
        """Run one reconcile pass for the object ``namespace/name``."""
        try:
            obj = self.client.get(namespace, name)
        except NotFoundError:
            return ReconcileOutcome()

        patcher = SerialPatcher(self.client, conditions.READY_SUMMARY.owned)
        result = ReconcileResult.EMPTY
        error: Exception | None = None

        if not obj.has_finalizer():
            # Registered before any work so a deletion never skips cleanup.
            obj.add_finalizer()
            result = ReconcileResult.REQUEUE
        elif obj.is_deleting or not obj.is_default_type:
            result, error = self.reconcile_delete(obj)
        elif obj.spec.suspend:
            # Not rescheduled while suspended; a spec edit triggers the next pass.
            logger.info("[%s] reconciliation is suspended for this object", obj.key)
            return ReconcileOutcome()
        else:
            result, error = self._reconcile(obj, patcher)

        return self._summarize_and_patch(obj, patcher, result, error)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _reconcile(
        self, obj: HelmRepository, patcher: SerialPatcher
    ) -> tuple[ReconcileResult, Exception | None]:
        old = obj.model_copy(deep=True)

        conditions.progressive_status(
            False, obj, PROGRESSING_REASON, "reconciliation in progress"
        )

        try:
            if obj.metadata.generation != obj.status.observed_generation:
                conditions.progressive_status(
                    False,
                    obj,
                    PROGRESSING_REASON,
                    "processing object: new generation "
                    f"{obj.status.observed_generation} -> {obj.metadata.generation}",
                )
                patcher.patch(obj)
            elif obj.reconcile_request() != obj.status.last_handled_reconcile_at:
                patcher.patch(obj)
        except (ConflictError, NotFoundError) as exc:
            return ReconcileResult.EMPTY, exc

        ctx = ReconcileContext(obj=obj, patcher=patcher)
        result = ReconcileResult.EMPTY
        error: Exception | None = None
        try:
            for stage in self.stages:
                try:
                    stage_result = stage.run_stage(ctx)
                except ReconcileError as exc:
                    result, error = ReconcileResult.EMPTY, exc
                    break
                if stage_result == ReconcileResult.REQUEUE:
                    return ReconcileResult.REQUEUE, None
                result = lowest_requeuing_result(result, stage_result)
        finally:
            if ctx.index is not None:
                try:
                    ctx.index.clear()
                except OSError as exc:
                    logger.warning("[%s] failed to remove cached index: %s", obj.key, exc)

        self.notify(old, obj, result, error)
        return result, error

    def notify(
        self,
        old: HelmRepository,
        new: HelmRepository,
        result: ReconcileResult,
        error: Exception | None,
    ) -> None:
        """Announce a new artifact, or recovery from an earlier failure."""
        artifact = new.get_artifact()
        if error is not None or result != ReconcileResult.SUCCESS or artifact is None:
            return

        annotations = {
            REVISION_ANNOTATION: artifact.revision,
            CHECKSUM_ANNOTATION: artifact.checksum,
        }
        if artifact.digest:
            annotations[DIGEST_ANNOTATION] = artifact.digest

        size = "unknown size"
        if artifact.size is not None:
            size = f"size {human_size(artifact.size)}"
        message = f"stored fetched index of {size} from '{new.spec.url}'"

        old_artifact = old.get_artifact()
        old_checksum = old_artifact.checksum if old_artifact is not None else ""
        if old_checksum != artifact.checksum:
            event_logf(
                self.recorder, new, EventType.NORMAL, NEW_ARTIFACT_REASON, message, annotations
            )
        elif conditions.failure_recovery(old, new):
            event_logf(
                self.recorder, new, EventType.NORMAL, SUCCEEDED_REASON, message, annotations
            )

    # ------------------------------------------------------------------
    # Deletion and type change
    # ------------------------------------------------------------------

    def reconcile_delete(self, obj: HelmRepository) -> tuple[ReconcileResult, Exception | None]:
        """Purge every artifact; release the finalizer only for deletions."""
        try:
            garbage_collect(obj, self.storage, self.recorder, self.gc_timeout)
        except ReconcileError as exc:
            # Keeping the finalizer makes the purge retry.
            return ReconcileResult.EMPTY, exc
        if obj.is_deleting:
            obj.remove_finalizer()
        return ReconcileResult.EMPTY, None

    # ------------------------------------------------------------------
    # Summarize
    # ------------------------------------------------------------------

    def _summarize_and_patch(
        self,
        obj: HelmRepository,
        patcher: SerialPatcher,
        result: ReconcileResult,
        error: Exception | None,
    ) -> ReconcileOutcome:
        self._record_error(obj, error)

        token = obj.reconcile_request()
        if token:
            obj.status.last_handled_reconcile_at = token

        requeue_after = jitter(obj.get_requeue_after(), self.requeue_jitter)
        runtime, error = compute_reconcile_result(obj, result, error, requeue_after)

        conditions.set_summary(obj)
        if error is not None and not _is_false(obj, READY_CONDITION):
            reason = getattr(error, "reason", FAILED_REASON)
            conditions.mark_false(obj, READY_CONDITION, reason, str(error))

        try:
            patcher.patch(obj)
        except NotFoundError as exc:
            if not obj.is_deleting:
                return ReconcileOutcome(result=runtime, error=error or exc)
        except ConflictError as exc:
            logger.error("[%s] failed to patch status: %s", obj.key, exc)
            return ReconcileOutcome(result=ControllerResult(), error=exc)

        return ReconcileOutcome(result=runtime, error=error)

    def _record_error(self, obj: HelmRepository, error: Exception | None) -> None:
        if error is None:
            return
        if isinstance(error, (EventError, StallingError)):
            event_logf(self.recorder, obj, EventType.WARNING, error.reason, error.message)
        else:
            logger.error("[%s] reconciliation failed: %s", obj.key, error)


def _is_false(obj: HelmRepository, condition_type: str) -> bool:
    condition = conditions.get(obj, condition_type)
    return condition is not None and condition.status == ConditionStatus.FALSE

