"""Notification events emitted by the reconciler."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    NORMAL = "Normal"
    WARNING = "Warning"
    # Trace events are logged and recorded, never surfaced as warnings.
    TRACE = "Trace"


class Event(BaseModel):
    """A single change notification about a resource object."""

    model_config = ConfigDict(frozen=True)

    object_key: str  # "<namespace>/<name>"
    event_type: EventType
    reason: str
    message: str
    annotations: dict[str, str] = {}
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


# Annotation keys attached to artifact notifications.
REVISION_ANNOTATION = "source.helmsource.dev/revision"
CHECKSUM_ANNOTATION = "source.helmsource.dev/checksum"
DIGEST_ANNOTATION = "source.helmsource.dev/digest"
