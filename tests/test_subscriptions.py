from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import pytest

from shopsync._push import PushMessage
from shopsync.exceptions import ShopSyncPushError
from shopsync.live.subscriptions import SubscriptionHandlers, SubscriptionManager, SubscriptionState


@dataclass
class _Topic:
    topic: str
    on_message: Callable[[PushMessage], None]
    on_subscribed: Callable[[], None]
    on_error: Callable[[Exception], None]


class _FakePush:
    """In-memory push transport; the test drives confirmations and messages."""

    def __init__(self, *, connected: bool = True, fail_subscribe: bool = False) -> None:
        self.connected = connected
        self.fail_subscribe = fail_subscribe
        self.connect_calls = 0
        self.handles: dict[int, _Topic] = {}
        self.unsubscribed: list[int] = []
        self._next = 0

    def is_connected(self) -> bool:
        return self.connected

    def connect(self) -> None:
        self.connect_calls += 1
        self.connected = True

    def subscribe(self, topic, *, on_message, on_subscribed, on_error) -> int:  # type: ignore[no-untyped-def]
        if self.fail_subscribe:
            raise ShopSyncPushError(f"cannot subscribe to {topic}")
        self._next += 1
        self.handles[self._next] = _Topic(topic, on_message, on_subscribed, on_error)
        return self._next

    def unsubscribe(self, handle: int) -> None:
        self.unsubscribed.append(handle)
        self.handles.pop(handle, None)

    def close(self) -> None:
        self.handles.clear()

    def confirm_all(self) -> None:
        for entry in list(self.handles.values()):
            entry.on_subscribed()

    def publish(self, topic: str, event: str, data: dict[str, object]) -> None:
        for entry in list(self.handles.values()):
            if entry.topic == topic:
                entry.on_message(PushMessage(topic=topic, event=event, data=data))


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class _Recorder:
    def __init__(self) -> None:
        self.updates: list[PushMessage] = []
        self.subscribed = 0
        self.errors: list[Exception] = []

    def handlers(self) -> SubscriptionHandlers:
        return SubscriptionHandlers(
            on_update=self.updates.append,
            on_subscribed=self._on_subscribed,
            on_error=self.errors.append,
        )

    def _on_subscribed(self) -> None:
        self.subscribed += 1


@pytest.mark.asyncio
async def test_subscription_state_machine() -> None:
    push = _FakePush()
    manager = SubscriptionManager(push, sleep=_Sleeps())
    recorder = _Recorder()

    sub = await manager.subscribe("store.products", recorder.handlers())
    assert sub.state is SubscriptionState.SUBSCRIBING

    push.confirm_all()
    assert sub.state is SubscriptionState.ACTIVE
    assert recorder.subscribed == 1

    push.publish("store.products", "product.stock.updated", {"product": {"id": 1, "current_stock": 2}})
    assert [m.event for m in recorder.updates] == ["product.stock.updated"]

    sub.unsubscribe()
    assert sub.state is SubscriptionState.UNSUBSCRIBED
    assert push.unsubscribed == [1]
    sub.unsubscribe()
    assert push.unsubscribed == [1]


@pytest.mark.asyncio
async def test_topic_is_shared_and_closed_by_last_subscriber() -> None:
    push = _FakePush()
    manager = SubscriptionManager(push, sleep=_Sleeps())
    first, second = _Recorder(), _Recorder()

    sub_a = await manager.subscribe("product.42", first.handlers())
    push.confirm_all()
    sub_b = await manager.subscribe("product.42", second.handlers())

    assert len(push.handles) == 1
    assert manager.listener_count("product.42") == 2
    # A late subscriber to a confirmed topic is active immediately.
    assert sub_b.active
    assert second.subscribed == 1

    push.publish("product.42", "product.rating.updated", {"product": {"id": 42, "average_rating": 4.0}})
    assert len(first.updates) == len(second.updates) == 1

    sub_a.unsubscribe()
    assert push.unsubscribed == []
    push.publish("product.42", "product.rating.updated", {"product": {"id": 42, "average_rating": 3.0}})
    assert len(first.updates) == 1
    assert len(second.updates) == 2

    sub_b.unsubscribe()
    assert push.unsubscribed == [1]
    assert manager.topics() == []


@pytest.mark.asyncio
async def test_subscribe_while_disconnected_connects_and_waits_settle_delay() -> None:
    push = _FakePush(connected=False)
    sleeps = _Sleeps()
    manager = SubscriptionManager(push, settle_delay=1.0, sleep=sleeps)

    await manager.subscribe("store.products", _Recorder().handlers())

    assert push.connect_calls == 1
    assert sleeps.delays == [1.0]
    assert [entry.topic for entry in push.handles.values()] == ["store.products"]


@pytest.mark.asyncio
async def test_subscribe_failure_is_reported_not_raised() -> None:
    push = _FakePush(fail_subscribe=True)
    manager = SubscriptionManager(push, sleep=_Sleeps())
    recorder = _Recorder()

    sub = await manager.subscribe("private-user.3", recorder.handlers())

    assert sub.state is SubscriptionState.UNSUBSCRIBED
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], ShopSyncPushError)
    assert manager.topics() == []


@pytest.mark.asyncio
async def test_transport_error_after_subscribe_drops_channel() -> None:
    push = _FakePush()
    manager = SubscriptionManager(push, sleep=_Sleeps())
    recorder = _Recorder()
    sub = await manager.subscribe("private-chat.room.9", recorder.handlers())

    push.handles[1].on_error(ShopSyncPushError("refused"))

    assert sub.state is SubscriptionState.UNSUBSCRIBED
    assert len(recorder.errors) == 1
    assert manager.topics() == []
    assert push.unsubscribed == [1]


@pytest.mark.asyncio
async def test_failing_handler_does_not_affect_other_subscribers() -> None:
    push = _FakePush()
    manager = SubscriptionManager(push, sleep=_Sleeps())
    healthy = _Recorder()

    def _explode(_message: PushMessage) -> None:
        raise RuntimeError("render failed")

    await manager.subscribe("store.products", SubscriptionHandlers(on_update=_explode))
    await manager.subscribe("store.products", healthy.handlers())
    push.confirm_all()

    push.publish("store.products", "product.stock.updated", {"productId": 1, "current_stock": 0})

    assert len(healthy.updates) == 1


@pytest.mark.asyncio
async def test_messages_before_confirmation_are_not_delivered() -> None:
    push = _FakePush()
    manager = SubscriptionManager(push, sleep=_Sleeps())
    recorder = _Recorder()
    await manager.subscribe("store.products", recorder.handlers())

    push.publish("store.products", "product.stock.updated", {"productId": 1, "current_stock": 0})

    assert recorder.updates == []


@pytest.mark.asyncio
async def test_close_unsubscribes_everything() -> None:
    push = _FakePush()
    manager = SubscriptionManager(push, sleep=_Sleeps())
    await manager.subscribe("a", _Recorder().handlers())
    await manager.subscribe("b", _Recorder().handlers())

    manager.close()

    assert sorted(push.unsubscribed) == [1, 2]
    assert manager.topics() == []
