"""HTTP transport returning tagged results instead of raising on HTTP errors."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, TypeAlias

import aiohttp

from shopsync._constants import USER_AGENT
from shopsync.config import ShopSyncConfig
from shopsync.exceptions import ShopSyncClientError, ShopSyncTransientError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success:
    """2xx response with its decoded JSON body."""

    data: Any
    status: int = 200


@dataclass(frozen=True)
class ClientFailure:
    """The backend rejected the request (status < 500)."""

    status: int
    message: str
    endpoint: str


@dataclass(frozen=True)
class TransientFailure:
    """Server error, timeout or connection failure (``status`` is ``None`` without a response)."""

    status: int | None
    message: str
    endpoint: str


TransportResult: TypeAlias = Success | ClientFailure | TransientFailure


def classify_status(status: int, data: Any, endpoint: str) -> TransportResult:
    """Turn an HTTP status and decoded body into a tagged result."""
    if 200 <= status < 300:
        return Success(data=data, status=status)
    message = f"HTTP error! status: {status}"
    if isinstance(data, Mapping):
        detail = data.get("message") or data.get("error")
        if isinstance(detail, str) and detail:
            message = detail
    if status >= 500:
        return TransientFailure(status=status, message=message, endpoint=endpoint)
    return ClientFailure(status=status, message=message, endpoint=endpoint)


def unwrap(result: TransportResult) -> Any:
    """Return the payload of a :class:`Success` or raise the matching error."""
    if isinstance(result, Success):
        return result.data
    if isinstance(result, ClientFailure):
        raise ShopSyncClientError(result.message, status_code=result.status, endpoint=result.endpoint)
    raise ShopSyncTransientError(result.message, status_code=result.status, endpoint=result.endpoint)


def _query_params(params: Mapping[str, Any] | None) -> dict[str, str] | None:
    if not params:
        return None
    query: dict[str, str] = {}
    for key, value in params.items():
        if isinstance(value, bool):
            query[key] = "true" if value else "false"
        else:
            query[key] = str(value)
    return query


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def send(
        self,
        method: str,
        path: str,
        *,
        body: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> TransportResult:
        ...


async def request_json(
    transport: Transport,
    method: str,
    path: str,
    *,
    body: Mapping[str, Any] | None = None,
    params: Mapping[str, Any] | None = None,
) -> Any:
    """Send a request and unwrap the result, raising on failure."""
    return unwrap(await transport.send(method, path, body=body, params=params))


class HttpTransport:
    """Authenticated JSON transport on top of an aiohttp session."""

    def __init__(
        self,
        config: ShopSyncConfig,
        http_session: aiohttp.ClientSession,
        *,
        token_provider: Callable[[], str | None] | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._token_provider = token_provider
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": USER_AGENT,
        }
        token = self._token_provider() if self._token_provider is not None else self._config.token
        if token:
            headers["authorization"] = f"Bearer {token}"
        return headers

    async def send(
        self,
        method: str,
        path: str,
        *,
        body: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> TransportResult:
        url = f"{self._config.api_url.rstrip('/')}{path}"
        data = json.dumps(body, separators=(",", ":")) if body is not None else None
        query = _query_params(params)

        _logger.debug("%s %s params=%s", method, url, query)

        try:
            async with self._http.request(
                method,
                url,
                data=data,
                params=query,
                headers=self._headers(),
                timeout=self._timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except TimeoutError:
            return TransientFailure(status=None, message=f"Request to {path} timed out", endpoint=path)
        except aiohttp.ClientError as exc:
            return TransientFailure(status=None, message=f"Request to {path} failed: {exc}", endpoint=path)

        try:
            decoded: Any = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError:
            if 200 <= status < 300:
                return TransientFailure(
                    status=None,
                    message=f"Invalid JSON from {path}: {text[:200]}",
                    endpoint=path,
                )
            decoded = {}

        result = classify_status(status, decoded, path)
        if not isinstance(result, Success):
            _logger.debug("%s %s -> %s", method, path, result)
        return result
