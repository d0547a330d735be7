"""Tests for result folding and the error taxonomy."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from itertools import product

import pytest

from helmsource.core import conditions
from helmsource.core.errors import EventError, GenericError, StallingError
from helmsource.core.jitter import jitter
from helmsource.core.reconcile import (
    ControllerResult,
    ReconcileResult,
    compute_reconcile_result,
    lowest_requeuing_result,
)
from helmsource.models.conditions import (
    READY_CONDITION,
    RECONCILING_CONDITION,
    STALLED_CONDITION,
)

INTERVAL = timedelta(minutes=10)


class TestLowestRequeuingResult:
    """The fold over stage results."""

    def test_requeue_wins(self):
        assert lowest_requeuing_result(ReconcileResult.SUCCESS, ReconcileResult.REQUEUE) == ReconcileResult.REQUEUE
        assert lowest_requeuing_result(ReconcileResult.REQUEUE, ReconcileResult.EMPTY) == ReconcileResult.REQUEUE

    def test_empty_is_identity(self):
        for result in ReconcileResult:
            assert lowest_requeuing_result(ReconcileResult.EMPTY, result) == result
            assert lowest_requeuing_result(result, ReconcileResult.EMPTY) == result

    def test_commutative(self):
        for a, b in product(ReconcileResult, repeat=2):
            assert lowest_requeuing_result(a, b) == lowest_requeuing_result(b, a)


class TestComputeReconcileResult:
    """Translation of results and errors into scheduling and conditions."""

    def test_success_records_generation(self, make_repository):
        repo = make_repository()
        repo.metadata.generation = 3
        conditions.mark_reconciling(repo, "Progressing", "working")
        result, err = compute_reconcile_result(repo, ReconcileResult.SUCCESS, None, INTERVAL)
        assert err is None
        assert result == ControllerResult(requeue_after=INTERVAL)
        assert repo.status.observed_generation == 3
        assert not conditions.has(repo, RECONCILING_CONDITION)

    def test_requeue_keeps_progress(self, make_repository):
        repo = make_repository()
        conditions.mark_reconciling(repo, "Progressing", "working")
        result, err = compute_reconcile_result(repo, ReconcileResult.REQUEUE, None, INTERVAL)
        assert result.requeue
        assert err is None
        assert conditions.has(repo, RECONCILING_CONDITION)
        assert repo.status.observed_generation == 0

    def test_stalling_error_is_swallowed(self, make_repository):
        repo = make_repository()
        stall = StallingError("invalid Helm repository URL", "URLInvalid")
        result, err = compute_reconcile_result(repo, ReconcileResult.EMPTY, stall, INTERVAL)
        assert err is None
        assert result.requeue_after == INTERVAL
        stalled = conditions.get(repo, STALLED_CONDITION)
        assert stalled is not None and stalled.reason == "URLInvalid"

    @pytest.mark.parametrize(
        "error",
        [EventError("fetch failed", "Failed"), GenericError("boom")],
    )
    def test_recoverable_error_is_returned(self, make_repository, error):
        repo = make_repository()
        result, err = compute_reconcile_result(repo, ReconcileResult.EMPTY, error, INTERVAL)
        assert err is error
        assert result.is_zero
        reconciling = conditions.get(repo, RECONCILING_CONDITION)
        assert reconciling.reason == "ProgressingWithRetry"
        assert not conditions.has(repo, READY_CONDITION)

    def test_deleting_object_keeps_observed_generation(self, make_repository):
        repo = make_repository()
        repo.metadata.deletion_timestamp = datetime.now(timezone.utc)
        compute_reconcile_result(repo, ReconcileResult.EMPTY, None, INTERVAL)
        assert repo.status.observed_generation == 0


class TestJitter:
    def test_zero_fraction_is_identity(self):
        assert jitter(INTERVAL, 0.0) == INTERVAL

    def test_within_bounds(self):
        for _ in range(50):
            value = jitter(INTERVAL, 0.1)
            assert INTERVAL * 0.9 <= value <= INTERVAL * 1.1

    def test_fraction_must_be_below_one(self):
        with pytest.raises(ValueError):
            jitter(INTERVAL, 1.0)
