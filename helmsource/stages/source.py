"""Source stage — fetch the remote index and prepare a candidate artifact.

On failure FetchFailed=True is recorded with the failure reason. When the
fetched index is byte-identical to the stored artifact (compared with the
stored artifact's own digest algorithm) the stored artifact is reused and
nothing else happens; remote servers often carry no cache validators, so
this is what keeps unchanged indexes from being written again.
"""

from __future__ import annotations

import logging

from helmsource.core import conditions
from helmsource.core.artifact_store import ArtifactStorage
from helmsource.core.digest import CANONICAL, Digest, transform_legacy_revision
from helmsource.core.errors import EventError, StallingError
from helmsource.core.reconcile import ReconcileResult
from helmsource.index.client import DEFAULT_MAX_INDEX_SIZE, IndexFetchError, RemoteIndexClient
from helmsource.index.handle import (
    IndexConstructionError,
    IndexHandle,
    IndexValidationError,
    InvalidURLError,
)
from helmsource.index.options import ClientOptions
from helmsource.index.secrets import SecretNotFoundError, SecretError, SecretResolver
from helmsource.models.conditions import (
    ARTIFACT_OUTDATED_CONDITION,
    AUTHENTICATION_FAILED_REASON,
    FAILED_REASON,
    FETCH_FAILED_CONDITION,
    INDEXATION_FAILED_REASON,
    NEW_REVISION_REASON,
    PROGRESSING_REASON,
    URL_INVALID_REASON,
)
from helmsource.models.repository import HelmRepository
from helmsource.stages.base import BaseStage, ReconcileContext

logger = logging.getLogger(__name__)


def _fail(obj: HelmRepository, error: EventError | StallingError) -> EventError | StallingError:
    conditions.mark_true(obj, FETCH_FAILED_CONDITION, error.reason, error.message)
    return error


class SourceStage(BaseStage):
    """Stage 2: fetch the index and describe the artifact it would become."""

    def __init__(
        self,
        storage: ArtifactStorage,
        client: RemoteIndexClient,
        secrets: SecretResolver,
        *,
        max_index_size: int = DEFAULT_MAX_INDEX_SIZE,
    ) -> None:
        self.storage = storage
        self.client = client
        self.secrets = secrets
        self.max_index_size = max_index_size

    @property
    def stage_id(self) -> str:
        return "source"

    @property
    def display_name(self) -> str:
        return "Source"

    # ------------------------------------------------------------------
    # Core logic
    # ------------------------------------------------------------------

    def execute(self, ctx: ReconcileContext) -> ReconcileResult:
        obj = ctx.obj

        options = self._client_options(obj)
        handle = self._new_handle(obj, options)

        try:
            handle.cache_index()
        except (IndexFetchError, OSError) as exc:
            # Transient or persistent, the next attempt may succeed.
            raise _fail(obj, EventError(
                f"failed to fetch Helm repository index: {exc}", FAILED_REASON
            )) from exc
        ctx.index = handle

        if self._matches_current_artifact(ctx):
            return ReconcileResult.SUCCESS

        try:
            handle.load_from_path()
        except (IndexValidationError, OSError) as exc:
            raise _fail(obj, EventError(
                f"failed to load Helm repository from index YAML: {exc}",
                INDEXATION_FAILED_REASON,
            )) from exc
        conditions.delete(obj, FETCH_FAILED_CONDITION)

        changed = False
        current = obj.get_artifact()
        if current is not None:
            current_rev = Digest(transform_legacy_revision(current.revision))
            changed = (
                not current_rev.is_valid()
                or current_rev != handle.digest(current_rev.algorithm)
            )

        revision = handle.digest(CANONICAL)
        if not revision.is_valid():
            raise _fail(obj, EventError(
                "failed to calculate revision of the index", INDEXATION_FAILED_REASON
            ))

        if current is None or changed:
            message = f"new index revision '{revision}'"
            if current is not None:
                conditions.mark_true(obj, ARTIFACT_OUTDATED_CONDITION, NEW_REVISION_REASON, message)
            conditions.progressive_status(
                True, obj, PROGRESSING_REASON, f"building artifact: {message}"
            )
            ctx.patcher.patch(obj)

        ctx.artifact = self.storage.new_artifact_for(
            obj.kind, obj.metadata, str(revision), f"index-{revision.hex}.yaml"
        )
        return ReconcileResult.SUCCESS

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client_options(self, obj: HelmRepository) -> ClientOptions:
        options = ClientOptions(
            url=obj.spec.url,
            timeout=obj.spec.timeout.total_seconds(),
            pass_credentials=obj.spec.pass_credentials,
        )
        if obj.spec.secret_ref is None:
            return options

        namespace = obj.metadata.namespace
        name = obj.spec.secret_ref.name
        # Secret contents may change later, so failures here are retried.
        try:
            secret_options = self.secrets.resolve(namespace, name)
        except SecretNotFoundError as exc:
            raise _fail(obj, EventError(
                f"failed to get secret '{namespace}/{name}': {exc}",
                AUTHENTICATION_FAILED_REASON,
            )) from exc
        except SecretError as exc:
            raise _fail(obj, EventError(
                f"failed to configure Helm client with secret data: {exc}",
                AUTHENTICATION_FAILED_REASON,
            )) from exc
        return secret_options.apply(options)

    def _new_handle(self, obj: HelmRepository, options: ClientOptions) -> IndexHandle:
        try:
            return IndexHandle(
                obj.spec.url, self.client, options, max_size=self.max_index_size
            )
        except InvalidURLError as exc:
            raise _fail(obj, StallingError(
                f"invalid Helm repository URL: {exc}", URL_INVALID_REASON
            )) from exc
        except IndexConstructionError as exc:
            raise _fail(obj, StallingError(
                f"failed to construct Helm client: {exc}", FAILED_REASON
            )) from exc

    @staticmethod
    def _matches_current_artifact(ctx: ReconcileContext) -> bool:
        """Reuse the stored artifact when the fetched index has its digest."""
        obj = ctx.obj
        current = obj.get_artifact()
        if current is None or ctx.index is None:
            return False
        current_digest = Digest(current.digest)
        if not current_digest:
            current_digest = Digest(transform_legacy_revision(current.checksum))
        if not current_digest.is_valid():
            return False
        fetched = ctx.index.digest(current_digest.algorithm)
        if not fetched.is_valid() or fetched != current_digest:
            return False
        ctx.artifact = current
        conditions.delete(obj, FETCH_FAILED_CONDITION)
        return True
