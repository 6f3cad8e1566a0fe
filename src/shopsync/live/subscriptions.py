"""Reference-counted topic subscriptions on top of a push transport.

The first subscriber to a topic opens the transport subscription, later
subscribers attach to it, and the last one to leave closes it.  Every
subscriber still gets its own :class:`Subscription` with its own handlers
and state, so two surfaces watching the same product behave exactly as if
they held separate transport subscriptions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from shopsync._push import PushMessage, PushTransport
from shopsync.exceptions import ShopSyncPushError

_logger = logging.getLogger(__name__)


class SubscriptionState(StrEnum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"


@dataclass(frozen=True)
class SubscriptionHandlers:
    """Callbacks of one subscriber; all run on the event loop thread."""

    on_update: Callable[[PushMessage], None]
    on_subscribed: Callable[[], None] | None = None
    on_error: Callable[[Exception], None] | None = None


class Subscription:
    """One subscriber's view of a topic.

    State machine: ``UNSUBSCRIBED -> SUBSCRIBING -> ACTIVE -> UNSUBSCRIBED``.
    """

    def __init__(self, manager: SubscriptionManager, topic: str, handlers: SubscriptionHandlers) -> None:
        self._manager = manager
        self.topic = topic
        self.handlers = handlers
        self.state = SubscriptionState.UNSUBSCRIBED

    @property
    def active(self) -> bool:
        return self.state is SubscriptionState.ACTIVE

    def unsubscribe(self) -> None:
        """Detach from the topic; safe to call more than once."""
        self._manager.unsubscribe(self)

    def __repr__(self) -> str:
        return f"Subscription(topic={self.topic!r}, state={self.state.value})"


@dataclass
class _Channel:
    topic: str
    listeners: list[Subscription] = field(default_factory=list)
    handle: int | None = None
    confirmed: bool = False


def _call_safely(callback: Callable[..., Any] | None, *args: Any, what: str) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        _logger.warning("%s callback failed", what, exc_info=True)


class SubscriptionManager:
    """Shares one transport subscription per topic between subscribers."""

    def __init__(
        self,
        transport: PushTransport,
        *,
        settle_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._settle_delay = settle_delay
        self._sleep = sleep
        self._channels: dict[str, _Channel] = {}

    @property
    def transport(self) -> PushTransport:
        return self._transport

    def topics(self) -> list[str]:
        return list(self._channels)

    def listener_count(self, topic: str) -> int:
        channel = self._channels.get(topic)
        return len(channel.listeners) if channel is not None else 0

    async def subscribe(self, topic: str, handlers: SubscriptionHandlers) -> Subscription:
        """Attach a subscriber to *topic*.

        If the transport is not connected yet, a connection is started and
        the transport subscribe is deferred by the settle delay instead of
        failing.  Failures are reported through ``on_error``; this
        coroutine does not raise for transport problems.
        """
        subscription = Subscription(self, topic, handlers)
        subscription.state = SubscriptionState.SUBSCRIBING

        channel = self._channels.get(topic)
        if channel is not None:
            channel.listeners.append(subscription)
            _logger.debug("Attached to topic %s (listeners: %d)", topic, len(channel.listeners))
            if channel.confirmed:
                subscription.state = SubscriptionState.ACTIVE
                _call_safely(handlers.on_subscribed, what=f"on_subscribed[{topic}]")
            return subscription

        channel = _Channel(topic=topic, listeners=[subscription])
        self._channels[topic] = channel

        if not self._transport.is_connected():
            try:
                self._transport.connect()
            except Exception as exc:
                self._fail_channel(channel, ShopSyncPushError(f"push connect failed: {exc}"))
                return subscription
            _logger.debug("Push not connected; deferring subscribe to %s by %.2fs", topic, self._settle_delay)
            await self._sleep(self._settle_delay)
            if self._channels.get(topic) is not channel or not channel.listeners:
                # Every subscriber left while the connection settled.
                return subscription

        try:
            channel.handle = self._transport.subscribe(
                topic,
                on_message=lambda message: self._on_message(channel, message),
                on_subscribed=lambda: self._on_subscribed(channel),
                on_error=lambda exc: self._fail_channel(channel, exc),
            )
        except Exception as exc:
            self._fail_channel(channel, exc)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        channel = self._channels.get(subscription.topic)
        subscription.state = SubscriptionState.UNSUBSCRIBED
        if channel is None or subscription not in channel.listeners:
            return
        channel.listeners.remove(subscription)
        if channel.listeners:
            _logger.debug("Detached from topic %s (listeners: %d)", channel.topic, len(channel.listeners))
            return
        del self._channels[channel.topic]
        if channel.handle is not None:
            _logger.debug("Last listener left topic %s; closing transport subscription", channel.topic)
            self._transport.unsubscribe(channel.handle)

    def close(self) -> None:
        """Unsubscribe everything (used on client shutdown)."""
        for channel in list(self._channels.values()):
            for subscription in list(channel.listeners):
                self.unsubscribe(subscription)

    def _on_subscribed(self, channel: _Channel) -> None:
        if self._channels.get(channel.topic) is not channel:
            return
        channel.confirmed = True
        for subscription in list(channel.listeners):
            if subscription.state is SubscriptionState.SUBSCRIBING:
                subscription.state = SubscriptionState.ACTIVE
                _call_safely(subscription.handlers.on_subscribed, what=f"on_subscribed[{channel.topic}]")

    def _on_message(self, channel: _Channel, message: PushMessage) -> None:
        for subscription in list(channel.listeners):
            if subscription.state is not SubscriptionState.ACTIVE:
                continue
            _call_safely(subscription.handlers.on_update, message, what=f"on_update[{channel.topic}]")

    def _fail_channel(self, channel: _Channel, exc: Exception) -> None:
        """Drop a channel the transport could not subscribe and notify its listeners."""
        _logger.warning("Subscription to %s failed: %s", channel.topic, exc)
        if self._channels.get(channel.topic) is channel:
            del self._channels[channel.topic]
        if channel.handle is not None:
            self._transport.unsubscribe(channel.handle)
            channel.handle = None
        for subscription in list(channel.listeners):
            subscription.state = SubscriptionState.UNSUBSCRIBED
            _call_safely(subscription.handlers.on_error, exc, what=f"on_error[{channel.topic}]")
        channel.listeners.clear()
