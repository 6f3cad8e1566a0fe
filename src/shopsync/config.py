"""Client configuration for shopsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from shopsync.exceptions import ShopSyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, kind: type[float] | type[int]) -> float | int:
    try:
        return kind(value)
    except ValueError as exc:
        raise ShopSyncConfigError(f"{env_key} must be a {kind.__name__}, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class CacheTtls:
    """Per-resource cache lifetimes in seconds.

    The more a view has to reflect recent mutations, the shorter its TTL.
    Stock and rating are kept fresh by the push channel instead.
    """

    cart: float = 30.0
    cart_count: float = 30.0
    favorites: float = 120.0
    room_products: float = 120.0
    product: float = 300.0
    store_products: float = 60.0
    categories: float = 600.0
    generic: float = 60.0


@dataclasses.dataclass(frozen=True)
class ShopSyncConfig:
    """Client configuration.

    Parameters
    ----------
    api_url : str
        REST API base URL including the ``/api`` prefix.
    token : str or None
        Bearer token sent with every request.  Session handling itself
        lives outside this library.
    request_timeout : float
        Total timeout in seconds for a single HTTP request.  A timeout is
        treated like any other transient failure.
    max_attempts : int
        Total attempts (first try included) for reads and idempotent calls.
    retry_base_delay : float
        Backoff base in seconds; the delay after failed attempt ``i`` is
        ``retry_base_delay * 2**i``.
    mutation_attempts : int
        Total attempts for non-idempotent writes.  Defaults to ``1`` so a
        create is never sent twice.
    push_enabled : bool
        Whether the client opens the real-time push transport.
    push_url : str
        WebSocket URL of the push broker.
    push_keepalive : int
        Keepalive in seconds for the push connection.
    subscribe_settle_delay : float
        Seconds to wait after starting a push connection before the first
        subscribe, giving the handshake time to finish.
    cache_ttls : CacheTtls
        Per-resource cache lifetimes.
    """

    api_url: str = "http://localhost:8000/api"
    token: str | None = None
    request_timeout: float = 15.0
    max_attempts: int = 4
    retry_base_delay: float = 1.0
    mutation_attempts: int = 1
    push_enabled: bool = True
    push_url: str = "ws://localhost:8080/mqtt"
    push_keepalive: int = 60
    subscribe_settle_delay: float = 1.0
    cache_ttls: CacheTtls = dataclasses.field(default_factory=CacheTtls)

    def __post_init__(self) -> None:
        if self.max_attempts < 1 or self.mutation_attempts < 1:
            raise ShopSyncConfigError("attempt counts must be >= 1")
        if self.retry_base_delay < 0 or self.subscribe_settle_delay < 0:
            raise ShopSyncConfigError("delays must be >= 0")
        if self.request_timeout <= 0:
            raise ShopSyncConfigError("request_timeout must be > 0")

    @classmethod
    def from_env(cls, **overrides: Any) -> ShopSyncConfig:
        """Create configuration from ``SHOPSYNC_*`` environment variables.

        Explicit keyword arguments override environment values.  TTLs can
        be overridden individually with ``SHOPSYNC_TTL_<RESOURCE>`` (for
        example ``SHOPSYNC_TTL_CART=15``) or wholesale through a
        ``cache_ttls`` override.
        """
        env = os.environ

        ttl_kwargs: dict[str, float] = {}
        for ttl_field in dataclasses.fields(CacheTtls):
            env_key = f"SHOPSYNC_TTL_{ttl_field.name.upper()}"
            val = env.get(env_key)
            if val is not None:
                ttl_kwargs[ttl_field.name] = float(_env_number(env_key, val, float))

        ttl_overrides = overrides.pop("cache_ttls", None)
        if isinstance(ttl_overrides, dict):
            ttl_kwargs.update(ttl_overrides)
        elif isinstance(ttl_overrides, CacheTtls):
            ttl_kwargs = dataclasses.asdict(ttl_overrides)

        config_kwargs: dict[str, Any] = {"cache_ttls": CacheTtls(**ttl_kwargs)}

        _ENV_STR_MAP = {
            "SHOPSYNC_API_URL": "api_url",
            "SHOPSYNC_TOKEN": "token",
            "SHOPSYNC_PUSH_URL": "push_url",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMBER_MAP: dict[str, tuple[str, type[float] | type[int]]] = {
            "SHOPSYNC_REQUEST_TIMEOUT": ("request_timeout", float),
            "SHOPSYNC_MAX_ATTEMPTS": ("max_attempts", int),
            "SHOPSYNC_RETRY_BASE_DELAY": ("retry_base_delay", float),
            "SHOPSYNC_MUTATION_ATTEMPTS": ("mutation_attempts", int),
            "SHOPSYNC_PUSH_KEEPALIVE": ("push_keepalive", int),
            "SHOPSYNC_SUBSCRIBE_SETTLE_DELAY": ("subscribe_settle_delay", float),
        }
        for env_key, (field_name, kind) in _ENV_NUMBER_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, kind)

        if "push_enabled" not in overrides:
            config_kwargs["push_enabled"] = _env_bool(env.get("SHOPSYNC_PUSH_ENABLED"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
