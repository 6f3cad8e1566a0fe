from __future__ import annotations

import aiohttp
import pytest

from shopsync._push import decode_push_payload, parse_push_url
from shopsync._transport import ClientFailure, HttpTransport, Success, TransientFailure, classify_status, unwrap
from shopsync.config import ShopSyncConfig
from shopsync.exceptions import ShopSyncClientError, ShopSyncPushError, ShopSyncTransientError


def test_success_statuses() -> None:
    assert classify_status(201, {"id": 1}, "/cart") == Success(data={"id": 1}, status=201)


def test_client_failure_uses_backend_message() -> None:
    result = classify_status(422, {"message": "The quantity field is required."}, "/cart")

    assert result == ClientFailure(status=422, message="The quantity field is required.", endpoint="/cart")


def test_error_field_is_used_when_message_is_missing() -> None:
    result = classify_status(401, {"error": "Unauthenticated"}, "/cart")

    assert isinstance(result, ClientFailure)
    assert result.message == "Unauthenticated"


def test_server_failure_falls_back_to_generic_message() -> None:
    result = classify_status(503, {}, "/store/products")

    assert result == TransientFailure(status=503, message="HTTP error! status: 503", endpoint="/store/products")


def test_unwrap_raises_typed_errors() -> None:
    assert unwrap(Success(data=[1, 2])) == [1, 2]

    with pytest.raises(ShopSyncClientError) as client_exc:
        unwrap(ClientFailure(status=404, message="Not found", endpoint="/products/1"))
    assert client_exc.value.status_code == 404
    assert client_exc.value.endpoint == "/products/1"

    with pytest.raises(ShopSyncTransientError) as transient_exc:
        unwrap(TransientFailure(status=None, message="timed out", endpoint="/cart"))
    assert transient_exc.value.status_code is None


def test_parse_push_url() -> None:
    endpoint = parse_push_url("wss://push.example.com/ws")

    assert (endpoint.host, endpoint.port, endpoint.path, endpoint.tls) == ("push.example.com", 443, "/ws", True)
    assert parse_push_url("ws://localhost:8080").path == "/mqtt"

    with pytest.raises(ShopSyncPushError):
        parse_push_url("https://push.example.com")


def test_decode_push_payload() -> None:
    message = decode_push_payload(
        "store.products", b'{"event": "product.stock.updated", "data": {"productId": 1, "current_stock": 2}}'
    )

    assert message.event == "product.stock.updated"
    assert message.data == {"productId": 1, "current_stock": 2}

    with pytest.raises(ShopSyncPushError):
        decode_push_payload("store.products", b'{"data": {}}')


class _FakeResponse:
    def __init__(self, status: int, text: str) -> None:
        self.status = status
        self._text = text

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        return None


class _FakeHttpSession:
    def __init__(self, response: _FakeResponse | None = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.requests: list[dict[str, object]] = []

    def request(self, method: str, url: str, **kwargs: object) -> _FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response


@pytest.mark.asyncio
async def test_http_transport_sends_bearer_token_and_normalized_params() -> None:
    http = _FakeHttpSession(_FakeResponse(200, '{"data": []}'))
    config = ShopSyncConfig(api_url="https://shop.example.com/api/", token="tok")
    transport = HttpTransport(config, http)  # type: ignore[arg-type]

    result = await transport.send("GET", "/store/products", params={"in_stock": True, "page": 2})

    assert result == Success(data={"data": []}, status=200)
    sent = http.requests[0]
    assert sent["url"] == "https://shop.example.com/api/store/products"
    assert sent["params"] == {"in_stock": "true", "page": "2"}
    assert sent["headers"]["authorization"] == "Bearer tok"  # type: ignore[index]


@pytest.mark.asyncio
async def test_http_transport_maps_network_failures_to_transient() -> None:
    http = _FakeHttpSession(error=aiohttp.ClientConnectionError("refused"))
    transport = HttpTransport(ShopSyncConfig(), http)  # type: ignore[arg-type]

    result = await transport.send("GET", "/cart")

    assert isinstance(result, TransientFailure)
    assert result.status is None


@pytest.mark.asyncio
async def test_http_transport_invalid_json_on_success_is_transient() -> None:
    http = _FakeHttpSession(_FakeResponse(200, "<html>"))
    transport = HttpTransport(ShopSyncConfig(), http)  # type: ignore[arg-type]

    result = await transport.send("GET", "/cart")

    assert isinstance(result, TransientFailure)
