"""Serial status patcher with conflict retry."""

from __future__ import annotations

import logging

from helmsource.core.client import ConflictError, ResourceClient
from helmsource.models.repository import HelmRepository

logger = logging.getLogger(__name__)


class SerialPatcher:
    """Writes the reconciler's working copy back through the client.

    On a stale base the latest object is fetched and the fields this
    reconciler owns (finalizers, status scalars, artifact and the owned
    conditions) are re-applied to it before retrying. Conditions owned by
    other writers are preserved.

    Parameters
    ----------
    client:
        API client used for reads and writes.
    owned_conditions:
        Condition types written by this reconciler.
    max_retries:
        Conflict retries before the ``ConflictError`` is raised.
    """

    def __init__(
        self,
        client: ResourceClient,
        owned_conditions: tuple[str, ...],
        *,
        max_retries: int = 5,
    ) -> None:
        self._client = client
        self._owned = owned_conditions
        self._max_retries = max_retries
        self.patch_count = 0

    def patch(self, obj: HelmRepository) -> None:
        attempt = 0
        target = obj
        while True:
            try:
                self._client.patch(target)
                break
            except ConflictError:
                attempt += 1
                if attempt > self._max_retries:
                    raise
                logger.debug("conflict patching %s, retrying (%d)", obj.key, attempt)
                target = self._rebase(obj)
        obj.metadata.resource_version = target.metadata.resource_version
        self.patch_count += 1

    def _rebase(self, obj: HelmRepository) -> HelmRepository:
        fresh = self._client.get(obj.metadata.namespace, obj.metadata.name)
        fresh.metadata.finalizers = list(obj.metadata.finalizers)
        foreign = [c for c in fresh.status.conditions if c.type not in self._owned]
        owned = [c for c in obj.status.conditions if c.type in self._owned]
        fresh.status = obj.status.model_copy(deep=True)
        fresh.status.conditions = [*foreign, *owned]
        return fresh
