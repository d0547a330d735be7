"""Condition helpers and the Ready summarization table.

Stages mutate conditions through the ``mark_*`` and ``delete`` helpers. The
polarity and ownership of each condition type is declared once, in a
``ConditionSummary``, and only consulted when the Ready condition is
computed at the end of a reconcile pass.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from helmsource.models.conditions import (
    ARTIFACT_IN_STORAGE_CONDITION,
    ARTIFACT_OUTDATED_CONDITION,
    FETCH_FAILED_CONDITION,
    READY_CONDITION,
    RECONCILING_CONDITION,
    STALLED_CONDITION,
    STORAGE_OPERATION_FAILED_CONDITION,
    Condition,
    ConditionStatus,
)
from helmsource.models.repository import HelmRepository


class ConditionSummary(BaseModel):
    """Declarative description of how the target condition is summarized.

    ``summarize`` is ordered by priority: the first condition signalling a
    problem decides the target's reason and message.
    """

    model_config = ConfigDict(frozen=True)

    target: str
    owned: tuple[str, ...]
    summarize: tuple[str, ...]
    negative_polarity: tuple[str, ...]


READY_SUMMARY = ConditionSummary(
    target=READY_CONDITION,
    owned=(
        STORAGE_OPERATION_FAILED_CONDITION,
        FETCH_FAILED_CONDITION,
        ARTIFACT_OUTDATED_CONDITION,
        ARTIFACT_IN_STORAGE_CONDITION,
        READY_CONDITION,
        RECONCILING_CONDITION,
        STALLED_CONDITION,
    ),
    summarize=(
        STORAGE_OPERATION_FAILED_CONDITION,
        FETCH_FAILED_CONDITION,
        ARTIFACT_OUTDATED_CONDITION,
        ARTIFACT_IN_STORAGE_CONDITION,
        STALLED_CONDITION,
        RECONCILING_CONDITION,
    ),
    negative_polarity=(
        STORAGE_OPERATION_FAILED_CONDITION,
        FETCH_FAILED_CONDITION,
        ARTIFACT_OUTDATED_CONDITION,
        STALLED_CONDITION,
        RECONCILING_CONDITION,
    ),
)

# Conditions whose clearing counts as recovery from a failure.
FAIL_CONDITIONS: tuple[str, ...] = (
    FETCH_FAILED_CONDITION,
    STORAGE_OPERATION_FAILED_CONDITION,
)


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------


def get(obj: HelmRepository, condition_type: str) -> Condition | None:
    for condition in obj.status.conditions:
        if condition.type == condition_type:
            return condition
    return None


def has(obj: HelmRepository, condition_type: str) -> bool:
    return get(obj, condition_type) is not None


def is_true(obj: HelmRepository, condition_type: str) -> bool:
    condition = get(obj, condition_type)
    return condition is not None and condition.status == ConditionStatus.TRUE


def is_ready(obj: HelmRepository) -> bool:
    return is_true(obj, READY_CONDITION)


# ---------------------------------------------------------------------------
# Mutators
# ---------------------------------------------------------------------------


def set_condition(obj: HelmRepository, condition: Condition) -> None:
    """Insert or replace a condition, keeping the transition time stable
    when the status itself did not change."""
    existing = get(obj, condition.type)
    if existing is not None and existing.status == condition.status:
        condition = condition.model_copy(
            update={"last_transition_time": existing.last_transition_time}
        )
    others = [c for c in obj.status.conditions if c.type != condition.type]
    obj.status.conditions = [*others, condition]


def _mark(
    obj: HelmRepository,
    condition_type: str,
    status: ConditionStatus,
    reason: str,
    message: str,
) -> None:
    set_condition(
        obj,
        Condition(
            type=condition_type,
            status=status,
            reason=reason,
            message=message,
            observed_generation=obj.metadata.generation,
            last_transition_time=datetime.now(timezone.utc),
        ),
    )


def mark_true(obj: HelmRepository, condition_type: str, reason: str, message: str) -> None:
    _mark(obj, condition_type, ConditionStatus.TRUE, reason, message)


def mark_false(obj: HelmRepository, condition_type: str, reason: str, message: str) -> None:
    _mark(obj, condition_type, ConditionStatus.FALSE, reason, message)


def mark_unknown(obj: HelmRepository, condition_type: str, reason: str, message: str) -> None:
    _mark(obj, condition_type, ConditionStatus.UNKNOWN, reason, message)


def mark_reconciling(obj: HelmRepository, reason: str, message: str) -> None:
    mark_true(obj, RECONCILING_CONDITION, reason, message)


def mark_stalled(obj: HelmRepository, reason: str, message: str) -> None:
    mark_true(obj, STALLED_CONDITION, reason, message)


def delete(obj: HelmRepository, condition_type: str) -> None:
    obj.status.conditions = [
        c for c in obj.status.conditions if c.type != condition_type
    ]


def progressive_status(
    reset_ready: bool, obj: HelmRepository, reason: str, message: str
) -> None:
    """Mark the object as progressing.

    Sets Reconciling, removes Stalled and, when ``reset_ready`` is set or the
    object has no Ready condition yet, moves Ready to Unknown with the same
    reason and message.
    """
    if reset_ready or not has(obj, READY_CONDITION):
        mark_unknown(obj, READY_CONDITION, reason, message)
    mark_reconciling(obj, reason, message)
    delete(obj, STALLED_CONDITION)


# ---------------------------------------------------------------------------
# Summarization
# ---------------------------------------------------------------------------


def set_summary(obj: HelmRepository, summary: ConditionSummary = READY_SUMMARY) -> None:
    """Compute the target condition from the summarized conditions.

    A True negative-polarity condition, or a False positive-polarity one,
    makes the target False; a True Reconciling condition makes it Unknown.
    Otherwise the first True positive-polarity condition makes it True.
    When none of the summarized conditions is present the target is left
    untouched.
    """
    positive: Condition | None = None
    for condition_type in summary.summarize:
        condition = get(obj, condition_type)
        if condition is None:
            continue
        negative = condition_type in summary.negative_polarity
        if negative and condition.status == ConditionStatus.TRUE:
            if condition_type == RECONCILING_CONDITION:
                mark_unknown(obj, summary.target, condition.reason, condition.message)
            else:
                mark_false(obj, summary.target, condition.reason, condition.message)
            return
        if not negative and condition.status == ConditionStatus.FALSE:
            mark_false(obj, summary.target, condition.reason, condition.message)
            return
        if not negative and condition.status == ConditionStatus.TRUE and positive is None:
            positive = condition
    if positive is not None:
        mark_true(obj, summary.target, positive.reason, positive.message)


def failure_recovery(
    old: HelmRepository, new: HelmRepository, fail_conditions: tuple[str, ...] = FAIL_CONDITIONS
) -> bool:
    """True when any failure condition present on ``old`` is gone on ``new``."""
    return any(
        has(old, condition_type) and not has(new, condition_type)
        for condition_type in fail_conditions
    )
