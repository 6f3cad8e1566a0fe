from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass

import paho.mqtt.client as mqtt
import pytest

from shopsync._push import MqttPushTransport, PushMessage
from shopsync.live.subscriptions import SubscriptionHandlers, SubscriptionManager, SubscriptionState


@dataclass
class _ReasonCode:
    is_failure: bool = False


@dataclass
class _Msg:
    topic: str
    payload: bytes


class _DummyClient:
    def __init__(self) -> None:
        self.subscribed: list[str] = []
        self.unsubscribed: list[str] = []

    def subscribe(self, topic: str, qos: int = 0) -> tuple[int, int]:
        self.subscribed.append(topic)
        return mqtt.MQTT_ERR_SUCCESS, len(self.subscribed)

    def unsubscribe(self, topic: str) -> None:
        self.unsubscribed.append(topic)


async def _no_sleep(_delay: float) -> None:
    return None


def _transport() -> tuple[MqttPushTransport, _DummyClient]:
    transport = MqttPushTransport(loop=asyncio.get_running_loop(), url="ws://localhost:8080/mqtt")
    client = _DummyClient()
    # Bypass the network loop; callbacks are driven by hand below.
    transport._client = client  # type: ignore[assignment]
    return transport, client


@pytest.mark.asyncio
async def test_topics_are_subscribed_on_connect_and_confirmed_on_loop() -> None:
    transport, client = _transport()
    confirmed: list[str] = []
    received: list[PushMessage] = []

    handle = transport.subscribe(
        "store.products",
        on_message=received.append,
        on_subscribed=lambda: confirmed.append("store.products"),
        on_error=lambda exc: None,
    )
    assert client.subscribed == []

    transport._on_connect(client, None, None, _ReasonCode(), None)  # type: ignore[arg-type]
    assert transport.is_connected()
    assert client.subscribed == ["store.products"]

    transport._on_subscribe(client, None, 1, [_ReasonCode()], None)  # type: ignore[arg-type]
    payload = b'{"event": "product.stock.updated", "data": {"productId": 1, "current_stock": 4}}'
    transport._on_message(client, None, _Msg("store.products", payload))  # type: ignore[arg-type]
    await asyncio.sleep(0)

    assert confirmed == ["store.products"]
    assert [m.data for m in received] == [{"productId": 1, "current_stock": 4}]

    transport.unsubscribe(handle)
    assert client.unsubscribed == ["store.products"]


@pytest.mark.asyncio
async def test_refused_subscription_reports_error() -> None:
    transport, client = _transport()
    errors: list[Exception] = []
    transport._on_connect(client, None, None, _ReasonCode(), None)  # type: ignore[arg-type]

    transport.subscribe("private-user.1", on_message=lambda m: None, on_subscribed=lambda: None, on_error=errors.append)
    transport._on_subscribe(client, None, 1, [_ReasonCode(is_failure=True)], None)  # type: ignore[arg-type]
    await asyncio.sleep(0)

    assert len(errors) == 1


@pytest.mark.asyncio
async def test_garbage_payload_is_ignored() -> None:
    transport, client = _transport()
    received: list[PushMessage] = []
    transport.subscribe(
        "store.products", on_message=received.append, on_subscribed=lambda: None, on_error=lambda exc: None
    )

    transport._on_message(client, None, _Msg("store.products", b"not json"))  # type: ignore[arg-type]
    await asyncio.sleep(0)

    assert received == []


class _FastAckClient(_DummyClient):
    """Delivers the SUBACK on another thread before ``subscribe`` returns."""

    def __init__(self, transport: MqttPushTransport) -> None:
        super().__init__()
        self.transport = transport
        self.ack_threads: list[threading.Thread] = []

    def subscribe(self, topic: str, qos: int = 0) -> tuple[int, int]:
        result, mid = super().subscribe(topic, qos)
        ack = threading.Thread(
            target=self.transport._on_subscribe,  # type: ignore[attr-defined]
            args=(self, None, mid, [_ReasonCode()], None),
        )
        ack.start()
        ack.join(timeout=0.05)
        self.ack_threads.append(ack)
        return result, mid


@pytest.mark.asyncio
async def test_suback_arriving_before_subscribe_returns_still_confirms() -> None:
    transport = MqttPushTransport(loop=asyncio.get_running_loop(), url="ws://localhost:8080/mqtt")
    client = _FastAckClient(transport)
    transport._client = client  # type: ignore[assignment]
    transport._on_connect(client, None, None, _ReasonCode(), None)  # type: ignore[arg-type]
    confirmed: list[str] = []

    transport.subscribe(
        "store.products",
        on_message=lambda m: None,
        on_subscribed=lambda: confirmed.append("store.products"),
        on_error=lambda exc: None,
    )
    for ack in client.ack_threads:
        ack.join(timeout=1.0)
    await asyncio.sleep(0)

    assert confirmed == ["store.products"]
    assert transport._pending_mids == {}  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_subscribers_stay_active_across_reconnect() -> None:
    transport, client = _transport()
    transport._on_connect(client, None, None, _ReasonCode(), None)  # type: ignore[arg-type]
    manager = SubscriptionManager(transport, sleep=_no_sleep)
    received: list[PushMessage] = []

    sub = await manager.subscribe("product.42", SubscriptionHandlers(on_update=received.append))
    transport._on_subscribe(client, None, 1, [_ReasonCode()], None)  # type: ignore[arg-type]
    await asyncio.sleep(0)
    assert sub.state is SubscriptionState.ACTIVE

    transport._on_disconnect(client, None, None, _ReasonCode(is_failure=True), None)  # type: ignore[arg-type]
    assert not transport.is_connected()
    transport._on_connect(client, None, None, _ReasonCode(), None)  # type: ignore[arg-type]
    assert client.subscribed == ["product.42", "product.42"]
    transport._on_subscribe(client, None, 2, [_ReasonCode()], None)  # type: ignore[arg-type]

    payload = b'{"event": "product.stock.updated", "data": {"productId": 42, "current_stock": 1}}'
    transport._on_message(client, None, _Msg("product.42", payload))  # type: ignore[arg-type]
    await asyncio.sleep(0)

    assert sub.state is SubscriptionState.ACTIVE
    assert [m.data["current_stock"] for m in received] == [1]
