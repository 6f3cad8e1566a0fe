"""Live updates: push subscriptions and reconciliation of local collections."""

from shopsync.live.collection import LiveCollection
from shopsync.live.events import (
    CHAT_PARSERS,
    NOTIFICATION_PARSERS,
    PRODUCT_PARSERS,
    EntityChange,
    EntityDelta,
    EntityInsert,
    EntityRemoval,
)
from shopsync.live.policy import PushedField, newer_pushed_fields, pushed_value_wins
from shopsync.live.reconcile import apply_change, apply_delta, insert_entity, remove_entity
from shopsync.live.subscriptions import (
    Subscription,
    SubscriptionHandlers,
    SubscriptionManager,
    SubscriptionState,
)

__all__ = [
    "CHAT_PARSERS",
    "NOTIFICATION_PARSERS",
    "PRODUCT_PARSERS",
    "EntityChange",
    "EntityDelta",
    "EntityInsert",
    "EntityRemoval",
    "LiveCollection",
    "PushedField",
    "Subscription",
    "SubscriptionHandlers",
    "SubscriptionManager",
    "SubscriptionState",
    "apply_change",
    "apply_delta",
    "insert_entity",
    "newer_pushed_fields",
    "pushed_value_wins",
    "remove_entity",
]
