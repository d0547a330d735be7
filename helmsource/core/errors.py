"""Reconcile error taxonomy.

Every error a stage reports is a ``ReconcileError`` carrying a ``reason``
that ends up on the object's conditions and events:

- ``StallingError``: permanent given the current spec (malformed URL,
  unconstructable client). It does not self-resolve without a spec edit.
- ``EventError``: may self-resolve (network failure, secret change,
  storage contention). Retried with backoff and recorded as a warning event.
- ``GenericError``: any other failure, including unexpected exceptions
  wrapped at the stage boundary. Retried with backoff.
"""

from __future__ import annotations

from helmsource.models.conditions import FAILED_REASON


class ReconcileError(RuntimeError):
    """Base class for errors returned by reconcile stages."""

    def __init__(self, message: str, reason: str = FAILED_REASON) -> None:
        super().__init__(message)
        self.reason = reason

    @property
    def message(self) -> str:
        return str(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(reason={self.reason!r}, message={self.message!r})"


class StallingError(ReconcileError):
    """The object cannot make progress until its spec changes."""


class EventError(ReconcileError):
    """A recoverable failure worth surfacing as a warning event."""


class GenericError(ReconcileError):
    """A recoverable failure without special handling."""
