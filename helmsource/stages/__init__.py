"""Reconcile stages, run in order: storage, source, artifact."""

from __future__ import annotations

from helmsource.stages.artifact import ArtifactStage
from helmsource.stages.base import BaseStage, ReconcileContext
from helmsource.stages.source import SourceStage
from helmsource.stages.storage import StorageStage, garbage_collect

__all__ = [
    "ArtifactStage",
    "BaseStage",
    "ReconcileContext",
    "SourceStage",
    "StorageStage",
    "garbage_collect",
]
