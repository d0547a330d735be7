"""Event filter predicates — gate which notifications reach the reconciler.

Each predicate answers one question per event kind (create, update, delete,
generic). The base ``Predicate`` lets every event through, matching the
baseline behaviour of an unfiltered watch; concrete predicates override the
kinds they care about.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from helmsource.models.repository import (
    REPOSITORY_TYPE_DEFAULT,
    REPOSITORY_TYPE_OCI,
    SOURCE_FINALIZER,
    HelmRepository,
)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class CreateEvent(_Event):
    obj: Any = None


class UpdateEvent(_Event):
    old: Any = None
    new: Any = None


class DeleteEvent(_Event):
    obj: Any = None


class GenericEvent(_Event):
    obj: Any = None


# ---------------------------------------------------------------------------
# Base and combinators
# ---------------------------------------------------------------------------


class Predicate:
    """Pass-through predicate; subclasses override individual event kinds."""

    def create(self, event: CreateEvent) -> bool:
        return True

    def update(self, event: UpdateEvent) -> bool:
        return True

    def delete(self, event: DeleteEvent) -> bool:
        return True

    def generic(self, event: GenericEvent) -> bool:
        return True


class AndPredicate(Predicate):
    def __init__(self, *predicates: Predicate) -> None:
        self.predicates = predicates

    def create(self, event: CreateEvent) -> bool:
        return all(p.create(event) for p in self.predicates)

    def update(self, event: UpdateEvent) -> bool:
        return all(p.update(event) for p in self.predicates)

    def delete(self, event: DeleteEvent) -> bool:
        return all(p.delete(event) for p in self.predicates)

    def generic(self, event: GenericEvent) -> bool:
        return all(p.generic(event) for p in self.predicates)


class OrPredicate(Predicate):
    def __init__(self, *predicates: Predicate) -> None:
        self.predicates = predicates

    def create(self, event: CreateEvent) -> bool:
        return any(p.create(event) for p in self.predicates)

    def update(self, event: UpdateEvent) -> bool:
        return any(p.update(event) for p in self.predicates)

    def delete(self, event: DeleteEvent) -> bool:
        return any(p.delete(event) for p in self.predicates)

    def generic(self, event: GenericEvent) -> bool:
        return any(p.generic(event) for p in self.predicates)


# ---------------------------------------------------------------------------
# Repository type
# ---------------------------------------------------------------------------


def _type_matches(repository_type: str, obj: Any) -> bool:
    if not isinstance(obj, HelmRepository):
        return False
    return obj.spec.type == repository_type


class TypePredicate(Predicate):
    """Admit events for repositories of one type discriminant.

    Updates only look at the new object, so a type change is admitted as
    soon as the new value matches.
    """

    def __init__(self, repository_type: str) -> None:
        self.repository_type = repository_type

    def create(self, event: CreateEvent) -> bool:
        return _type_matches(self.repository_type, event.obj)

    def update(self, event: UpdateEvent) -> bool:
        return _type_matches(self.repository_type, event.new)

    def delete(self, event: DeleteEvent) -> bool:
        return _type_matches(self.repository_type, event.obj)

    def generic(self, event: GenericEvent) -> bool:
        return _type_matches(self.repository_type, event.obj)

    def __repr__(self) -> str:
        return f"<TypePredicate repository_type={self.repository_type!r}>"


# ---------------------------------------------------------------------------
# Migration of the alternate type
# ---------------------------------------------------------------------------


def has_empty_status(obj: HelmRepository) -> bool:
    """True only when no status field has ever been written."""
    status = obj.status
    return (
        status.observed_generation == 0
        and not status.conditions
        and status.url == ""
        and status.artifact is None
        and status.last_handled_reconcile_at == ""
    )


def requires_migration(obj: Any) -> bool:
    """True for alternate-type repositories still carrying state from this
    controller: the finalizer or any status field."""
    if not isinstance(obj, HelmRepository):
        return False
    if obj.spec.type != REPOSITORY_TYPE_OCI:
        return False
    return obj.has_finalizer(SOURCE_FINALIZER) or not has_empty_status(obj)


class MigrationPredicate(Predicate):
    """Admit alternate-type objects that need one-time cleanup.

    The decision rests on accumulated finalizer and status state, not on
    what changed, so updates fire even when old and new specs are equal.
    Generic events keep the pass-through default.
    """

    def create(self, event: CreateEvent) -> bool:
        return requires_migration(event.obj)

    def update(self, event: UpdateEvent) -> bool:
        return requires_migration(event.new)

    def delete(self, event: DeleteEvent) -> bool:
        return requires_migration(event.obj)


# ---------------------------------------------------------------------------
# Change detection
# ---------------------------------------------------------------------------


class GenerationChangedPredicate(Predicate):
    """Admit updates only when the spec generation moved."""

    def update(self, event: UpdateEvent) -> bool:
        if not isinstance(event.old, HelmRepository) or not isinstance(event.new, HelmRepository):
            return False
        return event.old.metadata.generation != event.new.metadata.generation


class ReconcileRequestedPredicate(Predicate):
    """Admit updates carrying a new manual reconcile request token."""

    def update(self, event: UpdateEvent) -> bool:
        if not isinstance(event.old, HelmRepository) or not isinstance(event.new, HelmRepository):
            return False
        new_token = event.new.reconcile_request()
        return new_token != "" and new_token != event.old.reconcile_request()


def default_event_filter() -> Predicate:
    """The filter the reconciler is registered with: default-type
    repositories whose generation changed or that were asked to reconcile."""
    return AndPredicate(
        OrPredicate(
            TypePredicate(REPOSITORY_TYPE_DEFAULT),
            TypePredicate(""),
        ),
        OrPredicate(
            GenerationChangedPredicate(),
            ReconcileRequestedPredicate(),
        ),
    )
