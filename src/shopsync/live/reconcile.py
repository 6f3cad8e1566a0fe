"""Apply entity changes to a surface's in-memory collection.

All functions are pure: they return a new list and never mutate the input
collection or its entities.  Entities that are not touched by a change keep
their identity, so a renderer comparing by reference only redraws the
entity that actually changed.  When a change matches nothing the input list
itself is returned.

Entities may be mappings (``{"id": 1, ...}``) or pydantic models.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel

from shopsync.exceptions import ShopSyncReconcileError
from shopsync.live.events import EntityChange, EntityDelta, EntityId, EntityInsert, EntityRemoval

E = TypeVar("E")


def entity_id_of(entity: Any, id_field: str = "id") -> Any:
    if isinstance(entity, Mapping):
        return entity.get(id_field)
    return getattr(entity, id_field, None)


def same_id(left: Any, right: EntityId) -> bool:
    """Compare ids across int/str representations (``42 == "42"``)."""
    if left is None:
        return False
    return left == right or str(left) == str(right)


def with_fields(entity: E, changed_fields: Mapping[str, Any]) -> E:
    """Copy of *entity* with *changed_fields* replaced."""
    if isinstance(entity, BaseModel):
        return entity.model_copy(update=dict(changed_fields))
    if isinstance(entity, Mapping):
        return {**entity, **changed_fields}  # type: ignore[return-value]
    raise ShopSyncReconcileError(f"cannot apply fields to entity of type {type(entity).__name__}")


def apply_delta(collection: list[E], delta: EntityDelta, *, id_field: str = "id") -> list[E]:
    """Replace ``delta.changed_fields`` on the entity matching ``delta.entity_id``."""
    for index, entity in enumerate(collection):
        if not same_id(entity_id_of(entity, id_field), delta.entity_id):
            continue
        if all(_field_equals(entity, name, value) for name, value in delta.changed_fields.items()):
            return collection
        updated = list(collection)
        updated[index] = with_fields(entity, delta.changed_fields)
        return updated
    return collection


def remove_entity(collection: list[E], entity_id: EntityId, *, id_field: str = "id") -> list[E]:
    kept = [entity for entity in collection if not same_id(entity_id_of(entity, id_field), entity_id)]
    if len(kept) == len(collection):
        return collection
    return kept


def insert_entity(
    collection: list[E],
    entity: E,
    *,
    entity_id: EntityId,
    prepend: bool = False,
    id_field: str = "id",
    max_items: int | None = None,
) -> list[E]:
    """Add *entity* unless an entity with the same id is already present."""
    if any(same_id(entity_id_of(existing, id_field), entity_id) for existing in collection):
        return collection
    updated = [entity, *collection] if prepend else [*collection, entity]
    if max_items is not None and len(updated) > max_items:
        updated = updated[:max_items] if prepend else updated[-max_items:]
    return updated


def apply_change(
    collection: list[E],
    change: EntityChange,
    *,
    id_field: str = "id",
    max_items: int | None = None,
) -> list[E]:
    """Dispatch *change* to the matching reconcile function."""
    if isinstance(change, EntityDelta):
        return apply_delta(collection, change, id_field=id_field)
    if isinstance(change, EntityRemoval):
        return remove_entity(collection, change.entity_id, id_field=id_field)
    if isinstance(change, EntityInsert):
        return insert_entity(
            collection,
            change.entity,  # type: ignore[arg-type]
            entity_id=change.entity_id,
            prepend=change.prepend,
            id_field=id_field,
            max_items=max_items,
        )
    raise ShopSyncReconcileError(f"unsupported change {change!r}")


def _field_equals(entity: Any, name: str, value: Any) -> bool:
    missing = object()
    current = entity.get(name, missing) if isinstance(entity, Mapping) else getattr(entity, name, missing)
    return current is not missing and current == value
