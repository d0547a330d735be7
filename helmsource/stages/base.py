"""Abstract base stage with an enforced lifecycle.

Every concrete stage inherits from BaseStage and implements only
``execute()``. The ``run_stage()`` wrapper is **not overridable**: it logs
the stage boundary and turns any unexpected exception into a
``GenericError``, so a stage reports exactly one of three outcomes: a
``ReconcileResult``, a ``ReconcileError``, or a requeue request.
"""

from __future__ import annotations

import abc
import logging
from typing import final

from pydantic import BaseModel, ConfigDict

from helmsource.core.errors import GenericError, ReconcileError
from helmsource.core.patch import SerialPatcher
from helmsource.core.reconcile import ReconcileResult
from helmsource.index.handle import IndexHandle
from helmsource.models.artifacts import Artifact
from helmsource.models.repository import HelmRepository

logger = logging.getLogger(__name__)


class ReconcileContext(BaseModel):
    """State threaded through the stages of one reconcile pass.

    ``artifact`` and ``index`` are the two shared slots: the source stage
    fills them, the artifact stage consumes them.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    obj: HelmRepository
    patcher: SerialPatcher
    artifact: Artifact | None = None
    index: IndexHandle | None = None


class BaseStage(abc.ABC):
    """Abstract base for the reconcile stages.

    Subclasses **must** implement:
        * ``stage_id``     — unique identifier (e.g. ``"storage"``).
        * ``display_name`` — human-readable name used in logs.
        * ``execute(ctx)`` — the stage's core logic.

    Subclasses **must not** override ``run_stage()``.
    """

    @property
    @abc.abstractmethod
    def stage_id(self) -> str:
        """Unique stage identifier."""
        ...

    @property
    @abc.abstractmethod
    def display_name(self) -> str:
        """Human-readable display name."""
        ...

    @abc.abstractmethod
    def execute(self, ctx: ReconcileContext) -> ReconcileResult:
        """Run the stage against the context.

        Returns a ``ReconcileResult``; raises ``ReconcileError`` on failure.
        """
        ...

    @final
    def run_stage(self, ctx: ReconcileContext) -> ReconcileResult:
        """Execute the stage.  **Do not override.**"""
        key = ctx.obj.key
        logger.debug("%s [%s] starting for %s", self.display_name, self.stage_id, key)
        try:
            result = self.execute(ctx)
        except ReconcileError as exc:
            logger.debug(
                "%s [%s] failed for %s: %s",
                self.display_name,
                self.stage_id,
                key,
                exc,
            )
            raise
        except Exception as exc:
            logger.exception(
                "%s [%s] raised unexpectedly for %s", self.display_name, self.stage_id, key
            )
            raise GenericError(f"stage {self.stage_id} failed: {exc}") from exc

        logger.debug(
            "%s [%s] finished for %s: %s", self.display_name, self.stage_id, key, result.value
        )
        return result

    def __repr__(self) -> str:
        return f"<{type(self).__name__} stage_id={self.stage_id!r}>"
