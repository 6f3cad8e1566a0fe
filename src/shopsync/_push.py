"""Real-time push transport: paho-mqtt over WebSockets, bridged onto asyncio."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, cast
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from shopsync.exceptions import ShopSyncPushError

_logger = logging.getLogger(__name__)

#: Reconnect backoff bounds in seconds; paho doubles the delay up to the cap.
RECONNECT_MIN_DELAY = 1
RECONNECT_MAX_DELAY = 30


@dataclass(frozen=True)
class PushMessage:
    """A decoded push event received on a channel."""

    topic: str
    event: str
    data: dict[str, Any]


@dataclass(frozen=True)
class PushEndpoint:
    """Broker location parsed from a ``ws://``/``wss://`` URL."""

    host: str
    port: int
    path: str
    tls: bool


def parse_push_url(url: str) -> PushEndpoint:
    parts = urlsplit(url.strip())
    if parts.scheme not in {"ws", "wss"}:
        raise ShopSyncPushError(f"push URL must use ws:// or wss://, got {url!r}")
    if not parts.hostname:
        raise ShopSyncPushError(f"push URL has no host: {url!r}")
    tls = parts.scheme == "wss"
    port = parts.port or (443 if tls else 80)
    return PushEndpoint(host=parts.hostname, port=port, path=parts.path or "/mqtt", tls=tls)


def decode_push_payload(topic: str, payload: bytes) -> PushMessage:
    """Decode a ``{"event": ..., "data": {...}}`` JSON frame."""
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ShopSyncPushError("push payload is not a JSON object")
    event = parsed.get("event")
    if not isinstance(event, str) or not event:
        raise ShopSyncPushError("push payload has no event name")
    data = parsed.get("data")
    return PushMessage(topic=topic, event=event, data=data if isinstance(data, dict) else {})


class PushTransport(Protocol):
    """Pub/sub client with its own reconnect logic.

    Callbacks are always invoked on the asyncio loop thread.
    """

    def is_connected(self) -> bool:
        ...

    def connect(self) -> None:
        ...

    def subscribe(
        self,
        topic: str,
        *,
        on_message: Callable[[PushMessage], None],
        on_subscribed: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> int:
        ...

    def unsubscribe(self, handle: int) -> None:
        ...

    def close(self) -> None:
        ...


@dataclass
class _TopicListener:
    topic: str
    on_message: Callable[[PushMessage], None]
    on_subscribed: Callable[[], None]
    on_error: Callable[[Exception], None]
    confirmed: bool = field(default=False)


class MqttPushTransport:
    """Threaded paho-mqtt client that emits push messages onto an asyncio loop.

    Topics are re-subscribed after every reconnect, so a handle stays valid
    across connection drops until :meth:`unsubscribe` is called.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        url: str,
        token: str | None = None,
        keepalive: int = 60,
        client_id: str = "",
    ) -> None:
        self._loop = loop
        self._endpoint = parse_push_url(url)
        self._token = token
        self._keepalive = keepalive
        self._client_id = client_id
        self._client: mqtt.Client | None = None
        self._connected = threading.Event()
        self._lock = threading.Lock()
        self._handles = itertools.count(1)
        self._listeners: dict[int, _TopicListener] = {}
        self._pending_mids: dict[int, str] = {}

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def connect(self) -> None:
        """Start the network loop; returns before the handshake completes."""
        if self._client is not None:
            return
        endpoint = self._endpoint
        _logger.debug(
            "Push transport connect requested host=%s port=%s path=%s tls=%s",
            endpoint.host,
            endpoint.port,
            endpoint.path,
            endpoint.tls,
        )
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._client_id,
            protocol=mqtt.MQTTv5,
            transport="websockets",
        )
        client.enable_logger(_logger)
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
        client.ws_set_options(path=endpoint.path, headers=headers)
        if endpoint.tls:
            client.tls_set()
        client.reconnect_delay_set(min_delay=RECONNECT_MIN_DELAY, max_delay=RECONNECT_MAX_DELAY)

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message

        client.connect_async(endpoint.host, endpoint.port, keepalive=self._keepalive)
        client.loop_start()
        self._client = client

    def close(self) -> None:
        client = self._client
        self._client = None
        self._connected.clear()
        with self._lock:
            self._listeners.clear()
            self._pending_mids.clear()
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()
            _logger.debug("Push transport stopped")

    def subscribe(
        self,
        topic: str,
        *,
        on_message: Callable[[PushMessage], None],
        on_subscribed: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> int:
        handle = next(self._handles)
        listener = _TopicListener(
            topic=topic,
            on_message=on_message,
            on_subscribed=on_subscribed,
            on_error=on_error,
        )
        with self._lock:
            already_confirmed = any(
                other.topic == topic and other.confirmed for other in self._listeners.values()
            )
            self._listeners[handle] = listener
        if already_confirmed:
            listener.confirmed = True
            self._loop.call_soon(on_subscribed)
        elif self._client is not None and self.is_connected():
            self._send_subscribe(self._client, topic)
        # Otherwise the subscription is sent from _on_connect.
        return handle

    def unsubscribe(self, handle: int) -> None:
        with self._lock:
            listener = self._listeners.pop(handle, None)
            if listener is None:
                return
            still_used = any(other.topic == listener.topic for other in self._listeners.values())
        client = self._client
        if not still_used and client is not None and self.is_connected():
            _logger.debug("Push unsubscribe topic=%s", listener.topic)
            client.unsubscribe(listener.topic)

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _send_subscribe(self, client: mqtt.Client, topic: str) -> None:
        # The SUBACK can be handled on the network thread before subscribe()
        # returns; _on_subscribe blocks on the lock until the mid is known.
        with self._lock:
            result, mid = client.subscribe(topic, qos=0)
            if result == mqtt.MQTT_ERR_SUCCESS:
                self._pending_mids[mid] = topic
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._fail_topic(topic, ShopSyncPushError(f"subscribe to {topic} failed: rc={result}"))
            return
        _logger.debug("Push subscribe sent topic=%s mid=%s", topic, mid)

    def _on_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.is_failure:
            _logger.warning("Push connect failed: %s", reason_code)
            return
        self._connected.set()
        with self._lock:
            topics = {listener.topic for listener in self._listeners.values()}
            for listener in self._listeners.values():
                listener.confirmed = False
        _logger.debug("Push connected; subscribing %d topic(s)", len(topics))
        for topic in sorted(topics):
            self._send_subscribe(client, topic)

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        self._connected.clear()
        _logger.debug("Push disconnected: %s", reason_code)

    def _on_subscribe(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        mid: int,
        reason_codes: list[Any],
        _properties: Any,
    ) -> None:
        with self._lock:
            topic = self._pending_mids.pop(mid, None)
        if topic is None:
            return
        if any(code.is_failure for code in reason_codes):
            self._fail_topic(topic, ShopSyncPushError(f"broker refused subscription to {topic}: {reason_codes}"))
            return
        with self._lock:
            listeners = [listener for listener in self._listeners.values() if listener.topic == topic]
            for listener in listeners:
                listener.confirmed = True
        for listener in listeners:
            self._loop.call_soon_threadsafe(listener.on_subscribed)

    def _fail_topic(self, topic: str, exc: Exception) -> None:
        _logger.warning("%s", exc)
        with self._lock:
            listeners = [listener for listener in self._listeners.values() if listener.topic == topic]
        for listener in listeners:
            self._loop.call_soon_threadsafe(listener.on_error, exc)

    def _on_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        try:
            message = decode_push_payload(msg.topic, msg.payload)
        except (ValueError, ShopSyncPushError):
            _logger.debug("Push payload parse failure topic=%s", msg.topic, exc_info=True)
            return
        _logger.debug("Push message topic=%s event=%s", message.topic, message.event)
        with self._lock:
            callbacks = [
                listener.on_message for listener in self._listeners.values() if listener.topic == message.topic
            ]
        for callback in callbacks:
            self._loop.call_soon_threadsafe(callback, message)
