"""Entity changes carried by push events.

Every push event a surface cares about is turned into one of three
changes before it touches local state:

* :class:`EntityDelta` - replace some fields of an existing entity;
* :class:`EntityRemoval` - drop an entity;
* :class:`EntityInsert` - add an entity unless it is already present.

Parsers raise :class:`ShopSyncReconcileError` on malformed payloads; the
reconciler boundary logs those and keeps the previous state.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

from shopsync._constants import (
    MESSAGE_DELETED,
    MESSAGE_EDITED,
    MESSAGE_SENT,
    NOTIFICATION_CREATED,
    NOTIFICATION_DELETED,
    NOTIFICATION_READ,
    RATING_UPDATED,
    STOCK_UPDATED,
)
from shopsync.exceptions import ShopSyncReconcileError

EntityId: TypeAlias = int | str


class EntityDelta(BaseModel):
    """Partial update: only ``changed_fields`` of ``entity_id`` change."""

    model_config = ConfigDict(frozen=True)

    entity_id: EntityId
    changed_fields: dict[str, Any] = Field(default_factory=dict)


class EntityRemoval(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_id: EntityId


class EntityInsert(BaseModel):
    """A new entity; ``prepend`` puts it at the head of the collection."""

    model_config = ConfigDict(frozen=True)

    entity_id: EntityId
    entity: dict[str, Any]
    prepend: bool = False


EntityChange: TypeAlias = EntityDelta | EntityRemoval | EntityInsert
ChangeParser: TypeAlias = Callable[[Mapping[str, Any]], EntityChange]


def _require_id(value: Any, what: str) -> EntityId:
    if isinstance(value, bool) or not isinstance(value, (int, str)) or value == "":
        raise ShopSyncReconcileError(f"{what} has no usable id: {value!r}")
    return value


def _product_body(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return the product part of a product event.

    The backend broadcasts ``{"product": {"id": ..., ...}}``; a flat
    ``{"productId": ..., ...}`` shape is accepted as well.
    """
    nested = payload.get("product")
    if isinstance(nested, Mapping):
        return nested
    return payload


def _product_id(body: Mapping[str, Any]) -> EntityId:
    for key in ("id", "productId", "product_id"):
        if key in body:
            return _require_id(body[key], "product event")
    raise ShopSyncReconcileError(f"product event has no product id: {dict(body)!r}")


def stock_delta(payload: Mapping[str, Any]) -> EntityDelta:
    """``product.stock.updated`` -> ``{"stock": current_stock}``."""
    body = _product_body(payload)
    entity_id = _product_id(body)
    if "current_stock" in body:
        stock = body["current_stock"]
    elif "stock" in body:
        stock = body["stock"]
    else:
        raise ShopSyncReconcileError(f"stock event for product {entity_id} carries no stock")
    if isinstance(stock, bool) or not isinstance(stock, int):
        raise ShopSyncReconcileError(f"stock event for product {entity_id} has non-integer stock {stock!r}")
    return EntityDelta(entity_id=entity_id, changed_fields={"stock": stock})


def rating_delta(payload: Mapping[str, Any]) -> EntityDelta:
    """``product.rating.updated`` -> ``{"average_rating", "reviews_count"}``."""
    body = _product_body(payload)
    entity_id = _product_id(body)
    changed: dict[str, Any] = {}
    if "average_rating" in body:
        changed["average_rating"] = body["average_rating"]
    if "reviews_count" in body:
        changed["reviews_count"] = body["reviews_count"]
    if not changed:
        raise ShopSyncReconcileError(f"rating event for product {entity_id} carries no rating fields")
    return EntityDelta(entity_id=entity_id, changed_fields=changed)


def _message_body(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    message = payload.get("message")
    if not isinstance(message, Mapping):
        raise ShopSyncReconcileError(f"chat event has no message object: {dict(payload)!r}")
    return message


def message_sent(payload: Mapping[str, Any]) -> EntityInsert:
    message = _message_body(payload)
    return EntityInsert(entity_id=_require_id(message.get("id"), "chat message"), entity=dict(message))


def message_edited(payload: Mapping[str, Any]) -> EntityDelta:
    message = _message_body(payload)
    entity_id = _require_id(message.get("id"), "chat message")
    changed = {key: message[key] for key in ("message", "status", "is_edited", "updated_at") if key in message}
    return EntityDelta(entity_id=entity_id, changed_fields=changed)


def message_deleted(payload: Mapping[str, Any]) -> EntityRemoval:
    return EntityRemoval(entity_id=_require_id(payload.get("message_id"), "deleted message"))


def notification_created(payload: Mapping[str, Any]) -> EntityInsert:
    body = payload.get("notification", payload)
    if not isinstance(body, Mapping):
        raise ShopSyncReconcileError(f"notification event is not an object: {body!r}")
    return EntityInsert(entity_id=_require_id(body.get("id"), "notification"), entity=dict(body), prepend=True)


def notification_read(payload: Mapping[str, Any]) -> EntityDelta:
    entity_id = _require_id(payload.get("notificationId"), "read notification")
    read_at = payload.get("read_at") or datetime.now(UTC).isoformat()
    return EntityDelta(entity_id=entity_id, changed_fields={"is_read": True, "read_at": read_at})


def notification_deleted(payload: Mapping[str, Any]) -> EntityRemoval:
    return EntityRemoval(entity_id=_require_id(payload.get("notificationId"), "deleted notification"))


PRODUCT_PARSERS: dict[str, ChangeParser] = {
    STOCK_UPDATED: stock_delta,
    RATING_UPDATED: rating_delta,
}

CHAT_PARSERS: dict[str, ChangeParser] = {
    MESSAGE_SENT: message_sent,
    MESSAGE_EDITED: message_edited,
    MESSAGE_DELETED: message_deleted,
}

NOTIFICATION_PARSERS: dict[str, ChangeParser] = {
    NOTIFICATION_CREATED: notification_created,
    NOTIFICATION_READ: notification_read,
    NOTIFICATION_DELETED: notification_deleted,
}
