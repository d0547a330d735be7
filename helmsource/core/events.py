"""Notification sinks for reconcile events."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from helmsource.models.events import Event, EventType
from helmsource.models.repository import HelmRepository

logger = logging.getLogger(__name__)


class EventRecorder(Protocol):
    """Receives change notifications about resource objects."""

    def event(
        self,
        obj: HelmRepository,
        event_type: EventType,
        reason: str,
        message: str,
        annotations: dict[str, str] | None = None,
    ) -> None: ...


def event_logf(
    recorder: EventRecorder,
    obj: HelmRepository,
    event_type: EventType,
    reason: str,
    message: str,
    annotations: dict[str, str] | None = None,
) -> None:
    """Log a message and record it as an event at the same time."""
    if event_type == EventType.WARNING:
        logger.error("[%s] %s: %s", obj.key, reason, message)
    else:
        logger.info("[%s] %s", obj.key, message)
    recorder.event(obj, event_type, reason, message, annotations)


class LoggingEventRecorder:
    """Writes every event to the log; Trace events go to debug."""

    def event(
        self,
        obj: HelmRepository,
        event_type: EventType,
        reason: str,
        message: str,
        annotations: dict[str, str] | None = None,
    ) -> None:
        if event_type == EventType.WARNING:
            level = logging.WARNING
        elif event_type == EventType.TRACE:
            level = logging.DEBUG
        else:
            level = logging.INFO
        logger.log(level, "[%s] %s %s: %s", obj.key, event_type.value, reason, message)


class MemoryEventRecorder:
    """Keeps events in memory, in emission order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[Event] = []

    def event(
        self,
        obj: HelmRepository,
        event_type: EventType,
        reason: str,
        message: str,
        annotations: dict[str, str] | None = None,
    ) -> None:
        with self._lock:
            self._events.append(
                Event(
                    object_key=obj.key,
                    event_type=event_type,
                    reason=reason,
                    message=message,
                    annotations=annotations or {},
                )
            )

    @property
    def events(self) -> list[Event]:
        with self._lock:
            return list(self._events)

    def reasons(self) -> list[str]:
        return [e.reason for e in self.events]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
