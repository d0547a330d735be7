"""Jittered requeue intervals, so periodic re-checks do not synchronize."""

from __future__ import annotations

import random
from datetime import timedelta


def jitter(duration: timedelta, fraction: float, *, rng: random.Random | None = None) -> timedelta:
    """Return ``duration`` shifted by a random amount within ``±fraction``.

    A fraction of zero (or less) returns the duration unchanged.
    """
    if fraction <= 0:
        return duration
    if fraction >= 1:
        raise ValueError(f"jitter fraction must be below 1, got {fraction}")
    rng = rng or random
    factor = 1.0 + rng.uniform(-fraction, fraction)
    return timedelta(seconds=duration.total_seconds() * factor)
