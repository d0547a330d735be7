"""helmsource data models — all Pydantic v2."""

from helmsource.models.artifacts import Artifact
from helmsource.models.conditions import Condition, ConditionStatus
from helmsource.models.events import Event, EventType
from helmsource.models.repository import (
    RECONCILE_REQUEST_ANNOTATION,
    REPOSITORY_TYPE_DEFAULT,
    REPOSITORY_TYPE_OCI,
    SOURCE_FINALIZER,
    HelmRepository,
    HelmRepositorySpec,
    HelmRepositoryStatus,
    LocalObjectReference,
    ObjectMeta,
)

__all__ = [
    # artifacts
    "Artifact",
    # conditions
    "Condition",
    "ConditionStatus",
    # events
    "Event",
    "EventType",
    # repository
    "HelmRepository",
    "HelmRepositorySpec",
    "HelmRepositoryStatus",
    "LocalObjectReference",
    "ObjectMeta",
    "SOURCE_FINALIZER",
    "RECONCILE_REQUEST_ANNOTATION",
    "REPOSITORY_TYPE_DEFAULT",
    "REPOSITORY_TYPE_OCI",
]
