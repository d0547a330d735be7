"""Reconcile results and their translation into controller results.

Stages report a ``ReconcileResult``. The orchestrator folds the results of
every stage that ran with ``lowest_requeuing_result`` and finally turns the
folded value, together with any error, into a ``ControllerResult`` that tells
the scheduler when to come back.
"""

from __future__ import annotations

from datetime import timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict

from helmsource.core import conditions
from helmsource.core.errors import StallingError
from helmsource.models.conditions import PROGRESSING_WITH_RETRY_REASON
from helmsource.models.repository import HelmRepository


class ReconcileResult(str, Enum):
    """Abstract outcome of a stage or of a whole pass.

    EMPTY   : nothing to report; the fold identity.
    REQUEUE : come back immediately, not an error.
    SUCCESS : done; come back after the periodic interval.
    """

    EMPTY = "empty"
    REQUEUE = "requeue"
    SUCCESS = "success"


# Lower rank wins when folding: REQUEUE < SUCCESS < EMPTY.
_RESULT_RANK: dict[ReconcileResult, int] = {
    ReconcileResult.REQUEUE: 0,
    ReconcileResult.SUCCESS: 1,
    ReconcileResult.EMPTY: 2,
}


def lowest_requeuing_result(a: ReconcileResult, b: ReconcileResult) -> ReconcileResult:
    """Return the most conservative of two results.

    The order is REQUEUE < SUCCESS < EMPTY, so an immediate requeue beats a
    periodic one and EMPTY never weakens what other stages asked for.
    """
    return a if _RESULT_RANK[a] <= _RESULT_RANK[b] else b


class ControllerResult(BaseModel):
    """What the scheduler should do next with the object."""

    model_config = ConfigDict(frozen=True)

    requeue: bool = False
    requeue_after: timedelta | None = None

    @property
    def is_zero(self) -> bool:
        return not self.requeue and self.requeue_after is None


class ReconcileOutcome(BaseModel):
    """Result of one reconcile pass: a schedule and an optional error."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    result: ControllerResult = ControllerResult()
    error: Exception | None = None


def build_runtime_result(result: ReconcileResult, requeue_after: timedelta) -> ControllerResult:
    """Always-requeue result builder: success schedules the next periodic check."""
    if result == ReconcileResult.REQUEUE:
        return ControllerResult(requeue=True)
    if result == ReconcileResult.SUCCESS:
        return ControllerResult(requeue_after=requeue_after)
    return ControllerResult()


def compute_reconcile_result(
    obj: HelmRepository,
    result: ReconcileResult,
    error: Exception | None,
    requeue_after: timedelta,
) -> tuple[ControllerResult, Exception | None]:
    """Apply the error taxonomy to the object and derive the runtime result.

    - no error: Reconciling and Stalled are removed and the observed
      generation is recorded, unless an immediate requeue is pending or the
      object is being deleted.
    - ``StallingError``: Stalled is set, the error is swallowed and the
      object is revisited after its full interval.
    - any other error: Reconciling is kept with a retry reason and the
      error is returned so the scheduler backs off.
    """
    if error is None:
        if result == ReconcileResult.REQUEUE:
            return ControllerResult(requeue=True), None
        conditions.delete(obj, conditions.RECONCILING_CONDITION)
        conditions.delete(obj, conditions.STALLED_CONDITION)
        if not obj.is_deleting:
            obj.status.observed_generation = obj.metadata.generation
        return build_runtime_result(result, requeue_after), None

    if isinstance(error, StallingError):
        conditions.delete(obj, conditions.RECONCILING_CONDITION)
        conditions.mark_stalled(obj, error.reason, error.message)
        obj.status.observed_generation = obj.metadata.generation
        return ControllerResult(requeue_after=requeue_after), None

    conditions.delete(obj, conditions.STALLED_CONDITION)
    conditions.mark_reconciling(obj, PROGRESSING_WITH_RETRY_REASON, str(error))
    return ControllerResult(), error
