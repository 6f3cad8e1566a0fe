"""A surface's collection kept current by push events.

:class:`LiveCollection` owns a list of entities (product cards, chat
messages, notifications), subscribes to the topics that describe them and
reconciles every incoming event into a new list.  A malformed event or a
handler error is logged and the previous list is kept.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from shopsync._push import PushMessage
from shopsync.exceptions import ShopSyncReconcileError
from shopsync.live.events import ChangeParser, EntityDelta, EntityInsert, EntityRemoval
from shopsync.live.policy import PushedField, newer_pushed_fields
from shopsync.live.reconcile import apply_change, apply_delta, entity_id_of, insert_entity, same_id
from shopsync.live.subscriptions import Subscription, SubscriptionHandlers, SubscriptionManager

_logger = logging.getLogger(__name__)

E = TypeVar("E")


class LiveCollection(Generic[E]):
    """Entities of one surface, reconciled against push events.

    Parameters
    ----------
    manager
        Subscription manager shared by all surfaces of a client.
    topics
        Channels to watch, e.g. ``["store.products"]``.
    parsers
        Event name to change parser; events without a parser are ignored.
    items
        Initial snapshot.
    entity_factory
        Converts an inserted payload (a dict) into the collection's entity
        type, e.g. a pydantic model's ``model_validate``.
    max_items
        Cap applied after inserts (notification dropdowns keep 10).
    on_change
        Called with the new list whenever a push event changed it.
    """

    def __init__(
        self,
        manager: SubscriptionManager,
        topics: Iterable[str],
        parsers: Mapping[str, ChangeParser],
        *,
        items: Sequence[E] = (),
        id_field: str = "id",
        entity_factory: Callable[[dict[str, Any]], E] | None = None,
        max_items: int | None = None,
        on_change: Callable[[list[E]], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._manager = manager
        self._topics = tuple(dict.fromkeys(topics))
        self._parsers = dict(parsers)
        self._items: list[E] = list(items)
        self._id_field = id_field
        self._entity_factory = entity_factory
        self._max_items = max_items
        self._on_change = on_change
        self._clock = clock
        self._subscriptions: list[Subscription] = []
        self._pushed: dict[str, dict[str, PushedField]] = {}

    @property
    def items(self) -> list[E]:
        return self._items

    @property
    def topics(self) -> tuple[str, ...]:
        return self._topics

    @property
    def mounted(self) -> bool:
        return bool(self._subscriptions)

    @property
    def active(self) -> bool:
        """True once every topic subscription is confirmed."""
        return bool(self._subscriptions) and all(sub.active for sub in self._subscriptions)

    async def mount(self) -> None:
        if self._subscriptions:
            return
        for topic in self._topics:
            subscription = await self._manager.subscribe(
                topic,
                SubscriptionHandlers(
                    on_update=self.handle_message,
                    on_subscribed=lambda topic=topic: _logger.debug("Live collection subscribed to %s", topic),
                    on_error=lambda exc, topic=topic: _logger.warning(
                        "Live collection lost topic %s: %s", topic, exc
                    ),
                ),
            )
            self._subscriptions.append(subscription)

    def unmount(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.unsubscribe()

    async def __aenter__(self) -> LiveCollection[E]:
        await self.mount()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        self.unmount()

    def load(self, items: Sequence[E], *, as_of: float | None = None) -> list[E]:
        """Replace the collection with a REST snapshot.

        *as_of* is the clock reading taken when the snapshot was requested
        (defaults to now).  Pushed fields received at or after that moment
        are re-applied on top of the snapshot; older ones are discarded.
        """
        snapshot_as_of = self._clock() if as_of is None else as_of
        reloaded: list[E] = list(items)
        kept: dict[str, dict[str, PushedField]] = {}
        for entity_key, fields in self._pushed.items():
            newer = newer_pushed_fields(fields, snapshot_as_of)
            if not newer:
                continue
            kept[entity_key] = {name: fields[name] for name in newer}
            for entity in reloaded:
                if str(entity_id_of(entity, self._id_field)) == entity_key:
                    reloaded = apply_delta(
                        reloaded,
                        EntityDelta(entity_id=entity_key, changed_fields=newer),
                        id_field=self._id_field,
                    )
                    break
        self._pushed = kept
        self._items = reloaded
        return reloaded

    def handle_message(self, message: PushMessage) -> None:
        parser = self._parsers.get(message.event)
        if parser is None:
            _logger.debug("Ignoring event %s on %s", message.event, message.topic)
            return
        try:
            change = parser(message.data)
            if isinstance(change, EntityInsert) and self._entity_factory is not None:
                updated = insert_entity(
                    self._items,
                    self._entity_factory(change.entity),
                    entity_id=change.entity_id,
                    prepend=change.prepend,
                    id_field=self._id_field,
                    max_items=self._max_items,
                )
            else:
                updated = apply_change(self._items, change, id_field=self._id_field, max_items=self._max_items)
        except (ShopSyncReconcileError, ValidationError) as exc:
            _logger.warning("Dropping %s event on %s: %s", message.event, message.topic, exc)
            return

        self._remember(change)
        if updated is self._items:
            return
        self._items = updated
        if self._on_change is not None:
            try:
                self._on_change(updated)
            except Exception:
                _logger.warning("Live collection change callback failed", exc_info=True)

    def _remember(self, change: EntityDelta | EntityRemoval | EntityInsert) -> None:
        entity_key = str(change.entity_id)
        if isinstance(change, EntityDelta):
            # Only entities this surface shows; a reload brings the rest fresh.
            if not any(same_id(entity_id_of(entity, self._id_field), change.entity_id) for entity in self._items):
                return
            received_at = self._clock()
            fields = self._pushed.setdefault(entity_key, {})
            for name, value in change.changed_fields.items():
                fields[name] = PushedField(value=value, received_at=received_at)
        elif isinstance(change, EntityRemoval):
            self._pushed.pop(entity_key, None)
