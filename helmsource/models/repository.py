"""HelmRepository resource model — desired spec plus observed status.

The reconciler holds a mutable working copy of this object per reconcile
pass and writes it back through the API client. Field names serialize to
the camelCase shape used in manifests (``apiVersion``, ``secretRef``...).
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from helmsource.models.artifacts import Artifact
from helmsource.models.conditions import Condition

API_VERSION = "source.helmsource.dev/v1"
KIND = "HelmRepository"

# Finalizer registered on every object this controller has reconciled.
SOURCE_FINALIZER = "finalizers.helmsource.dev"

# Annotation carrying the last manual reconcile request token.
RECONCILE_REQUEST_ANNOTATION = "reconcile.helmsource.dev/requestedAt"

REPOSITORY_TYPE_DEFAULT = "default"
REPOSITORY_TYPE_OCI = "oci"

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: Any) -> timedelta:
    """Parse ``"1h30m"``-style strings, numbers of seconds or timedeltas."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    text = str(value).strip()
    if not text or _DURATION_RE.sub("", text):
        raise ValueError(f"invalid duration {value!r}")
    seconds = sum(
        float(amount) * _DURATION_UNITS[unit]
        for amount, unit in _DURATION_RE.findall(text)
    )
    return timedelta(seconds=seconds)


def format_duration(value: timedelta) -> str:
    total = int(value.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )


class LocalObjectReference(_CamelModel):
    name: str


class ObjectMeta(_CamelModel):
    name: str
    namespace: str = "default"
    uid: str = Field(default_factory=lambda: str(uuid.uuid4()))
    generation: int = 1
    resource_version: int = 0
    finalizers: list[str] = []
    annotations: dict[str, str] = {}
    deletion_timestamp: datetime | None = None


class HelmRepositorySpec(_CamelModel):
    url: str
    secret_ref: LocalObjectReference | None = None
    pass_credentials: bool = False
    interval: timedelta = timedelta(minutes=10)
    timeout: timedelta = timedelta(seconds=60)
    suspend: bool = False
    type: str = ""

    @field_validator("interval", "timeout", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @field_serializer("interval", "timeout")
    def _serialize_duration(self, value: timedelta) -> str:
        return format_duration(value)


class HelmRepositoryStatus(_CamelModel):
    observed_generation: int = 0
    conditions: list[Condition] = []
    url: str = ""
    artifact: Artifact | None = None
    last_handled_reconcile_at: str = ""


class HelmRepository(_CamelModel):
    """A repository resource: where to fetch the index and what was stored."""

    api_version: str = API_VERSION
    kind: str = KIND
    metadata: ObjectMeta
    spec: HelmRepositorySpec
    status: HelmRepositoryStatus = Field(default_factory=HelmRepositoryStatus)

    @property
    def key(self) -> str:
        return f"{self.metadata.namespace}/{self.metadata.name}"

    def get_artifact(self) -> Artifact | None:
        return self.status.artifact

    def get_requeue_after(self) -> timedelta:
        return self.spec.interval

    def reconcile_request(self) -> str:
        """Return the requested-at token from annotations, or ``""``."""
        return self.metadata.annotations.get(RECONCILE_REQUEST_ANNOTATION, "")

    def has_finalizer(self, finalizer: str = SOURCE_FINALIZER) -> bool:
        return finalizer in self.metadata.finalizers

    def add_finalizer(self, finalizer: str = SOURCE_FINALIZER) -> None:
        if finalizer not in self.metadata.finalizers:
            self.metadata.finalizers = [*self.metadata.finalizers, finalizer]

    def remove_finalizer(self, finalizer: str = SOURCE_FINALIZER) -> None:
        self.metadata.finalizers = [
            f for f in self.metadata.finalizers if f != finalizer
        ]

    @property
    def is_deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    @property
    def is_default_type(self) -> bool:
        return self.spec.type in ("", REPOSITORY_TYPE_DEFAULT)

    def to_manifest(self) -> dict[str, Any]:
        """Serialize to the camelCase manifest shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
