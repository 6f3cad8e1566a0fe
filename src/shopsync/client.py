"""High-level async client: cached, coalesced and retried storefront reads."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

import aiohttp

from shopsync._api import cart as _cart_api
from shopsync._api import favorites as _favorites_api
from shopsync._api import products as _products_api
from shopsync._api import store as _store_api
from shopsync._cache import RequestCache, get_request_cache
from shopsync._coalesce import RequestCoalescer, get_request_coalescer
from shopsync._constants import STORE_PRODUCTS_CHANNEL, product_channel, room_chat_channel, user_channel
from shopsync._push import MqttPushTransport, PushTransport
from shopsync._retry import retry_with_backoff
from shopsync._transport import HttpTransport, Transport, request_json
from shopsync.config import ShopSyncConfig
from shopsync.exceptions import ShopSyncError, ShopSyncPushError
from shopsync.keys import (
    CART_TAG,
    FAVORITES_TAG,
    ROOM_PRODUCTS_TAG,
    STORE_LISTING_TAG,
    CacheKey,
    cart_count_key,
    cart_key,
    categories_key,
    favorites_key,
    generic_get_key,
    product_key,
    product_tag,
    room_products_key,
    room_tag,
    store_products_key,
)
from shopsync.live.collection import LiveCollection
from shopsync.live.events import CHAT_PARSERS, NOTIFICATION_PARSERS, PRODUCT_PARSERS
from shopsync.live.subscriptions import SubscriptionManager
from shopsync.models.cart import Cart, CartCount, FavoriteToggle, Favorites
from shopsync.models.product import Product, ProductPage, RoomProducts

_logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Notification dropdowns only keep the most recent entries.
NOTIFICATION_LIMIT = 10


class ShopClient:
    """Async client for the storefront API.

    Reads go through the request cache, identical in-flight reads are
    coalesced, and transient failures are retried with exponential backoff.
    Writes bypass the cache and invalidate the entries they make stale.

    Usage::

        async with ShopClient(ShopSyncConfig.from_env()) as client:
            page = await client.get_public_products({"category": "books"})
            async with await client.watch_store_products(page.data) as live:
                ...
    """

    def __init__(
        self,
        config: ShopSyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        cache: RequestCache | None = None,
        coalescer: RequestCoalescer | None = None,
        push: PushTransport | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._external_transport = transport is not None
        self._cache = cache if cache is not None else get_request_cache()
        self._coalescer = coalescer if coalescer is not None else get_request_coalescer()
        self._push = push
        self._external_push = push is not None
        self._sleep = sleep
        self._subscriptions: SubscriptionManager | None = None
        if push is not None:
            self._subscriptions = SubscriptionManager(
                push, settle_delay=config.subscribe_settle_delay, sleep=sleep
            )

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ShopClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session)
        if self._push is None and self._config.push_enabled:
            self._push = MqttPushTransport(
                loop=asyncio.get_running_loop(),
                url=self._config.push_url,
                token=self._config.token,
                keepalive=self._config.push_keepalive,
            )
            self._subscriptions = SubscriptionManager(
                self._push,
                settle_delay=self._config.subscribe_settle_delay,
                sleep=self._sleep,
            )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._subscriptions is not None:
            self._subscriptions.close()
        if self._push is not None and not self._external_push:
            self._push.close()
            self._push = None
            self._subscriptions = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._external_transport:
            self._transport = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def config(self) -> ShopSyncConfig:
        return self._config

    @property
    def cache(self) -> RequestCache:
        return self._cache

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise ShopSyncError("Client not initialized. Use 'async with ShopClient(...) as client:'")
        return self._transport

    def _require_subscriptions(self) -> SubscriptionManager:
        if self._subscriptions is None:
            raise ShopSyncPushError("Push updates are disabled (set push_enabled or pass a push transport)")
        return self._subscriptions

    async def _cached(
        self,
        cache_key: CacheKey,
        ttl: float,
        call: Callable[[Transport], Awaitable[T]],
        *,
        force_refresh: bool = False,
    ) -> T:
        """Serve *cache_key* from cache, or fetch it once for all concurrent callers.

        Nothing is cached when the fetch fails; the error reaches every
        waiter unchanged.
        """
        key = cache_key.key
        if not force_refresh:
            cached = self._cache.get(key)
            if cached is not None:
                _logger.debug("Cache hit: %s", key)
                return cached
        _logger.debug("Cache miss: %s", key)
        transport = self._require_transport()

        async def _fetch_and_store() -> T:
            requested_at = self._cache.clock()
            value = await retry_with_backoff(
                lambda: call(transport),
                max_attempts=self._config.max_attempts,
                base_delay=self._config.retry_base_delay,
                sleep=self._sleep,
            )
            self._cache.set(key, value, ttl, tags=cache_key.tags, requested_at=requested_at)
            return value

        return await self._coalescer.coalesce(key, _fetch_and_store)

    async def _mutate(
        self,
        call: Callable[[Transport], Awaitable[T]],
        *,
        tags: Iterable[str] = (),
        patterns: Iterable[str] = (),
    ) -> T:
        """Run a write, then drop the cache entries it made stale."""
        transport = self._require_transport()
        result = await retry_with_backoff(
            lambda: call(transport),
            max_attempts=self._config.mutation_attempts,
            base_delay=self._config.retry_base_delay,
            sleep=self._sleep,
        )
        tag_list = list(tags)
        removed = self._cache.invalidate_tags(*tag_list) if tag_list else 0
        for pattern in patterns:
            removed += self._cache.invalidate(pattern)
        _logger.debug("Mutation invalidated %d cache entries", removed)
        return result

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def get_room_products(
        self,
        room_id: int | str,
        params: Mapping[str, Any] | None = None,
        *,
        force_refresh: bool = False,
    ) -> RoomProducts:
        return await self._cached(
            room_products_key(room_id, params),
            self._config.cache_ttls.room_products,
            lambda t: _products_api.fetch_room_products(t, room_id, params),
            force_refresh=force_refresh,
        )

    async def get_product(self, product_id: int | str, *, force_refresh: bool = False) -> Product:
        return await self._cached(
            product_key(product_id),
            self._config.cache_ttls.product,
            lambda t: _products_api.fetch_product(t, product_id),
            force_refresh=force_refresh,
        )

    async def create_product(self, room_id: int | str, data: Mapping[str, Any]) -> Any:
        """Create a product in a room.

        Invalidates that room's listings and the public store listing.
        """
        return await self._mutate(
            lambda t: _products_api.create_product(t, room_id, data),
            tags=(room_tag(room_id), STORE_LISTING_TAG),
        )

    async def update_product(self, product_id: int | str, data: Mapping[str, Any]) -> Any:
        # The owning room is not known here, so every room listing goes.
        return await self._mutate(
            lambda t: _products_api.update_product(t, product_id, data),
            tags=(product_tag(product_id), ROOM_PRODUCTS_TAG, STORE_LISTING_TAG),
        )

    async def delete_product(self, product_id: int | str) -> Any:
        return await self._mutate(
            lambda t: _products_api.delete_product(t, product_id),
            tags=(product_tag(product_id), ROOM_PRODUCTS_TAG, STORE_LISTING_TAG),
        )

    # ------------------------------------------------------------------
    # Cart
    # ------------------------------------------------------------------

    async def get_cart(self, *, force_refresh: bool = False) -> Cart:
        return await self._cached(
            cart_key(),
            self._config.cache_ttls.cart,
            _cart_api.fetch_cart,
            force_refresh=force_refresh,
        )

    async def get_cart_count(self, *, force_refresh: bool = False) -> CartCount:
        return await self._cached(
            cart_count_key(),
            self._config.cache_ttls.cart_count,
            _cart_api.fetch_cart_count,
            force_refresh=force_refresh,
        )

    async def add_to_cart(self, product_id: int | str, quantity: int = 1) -> Any:
        return await self._mutate(lambda t: _cart_api.add_to_cart(t, product_id, quantity), tags=(CART_TAG,))

    async def update_cart_item(self, item_id: int | str, quantity: int) -> Any:
        return await self._mutate(lambda t: _cart_api.update_cart_item(t, item_id, quantity), tags=(CART_TAG,))

    async def remove_from_cart(self, item_id: int | str) -> Any:
        return await self._mutate(lambda t: _cart_api.remove_from_cart(t, item_id), tags=(CART_TAG,))

    async def clear_cart(self) -> Any:
        return await self._mutate(_cart_api.clear_cart, tags=(CART_TAG,))

    # ------------------------------------------------------------------
    # Favorites
    # ------------------------------------------------------------------

    async def get_favorites(self, *, force_refresh: bool = False) -> Favorites:
        return await self._cached(
            favorites_key(),
            self._config.cache_ttls.favorites,
            _favorites_api.fetch_favorites,
            force_refresh=force_refresh,
        )

    async def toggle_favorite(self, product_id: int | str) -> FavoriteToggle:
        # The product's is_liked flag changes too.
        return await self._mutate(
            lambda t: _favorites_api.toggle_favorite(t, product_id),
            tags=(FAVORITES_TAG, product_tag(product_id)),
        )

    # ------------------------------------------------------------------
    # Public store
    # ------------------------------------------------------------------

    async def get_public_products(
        self,
        params: Mapping[str, Any] | None = None,
        *,
        force_refresh: bool = False,
    ) -> ProductPage:
        return await self._cached(
            store_products_key(params),
            self._config.cache_ttls.store_products,
            lambda t: _store_api.fetch_public_products(t, params),
            force_refresh=force_refresh,
        )

    async def get_categories(self, *, force_refresh: bool = False) -> list[str]:
        return await self._cached(
            categories_key(),
            self._config.cache_ttls.categories,
            _store_api.fetch_categories,
            force_refresh=force_refresh,
        )

    # ------------------------------------------------------------------
    # Generic requests
    # ------------------------------------------------------------------

    async def get(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        ttl: float | None = None,
        force_refresh: bool = False,
    ) -> Any:
        """GET an arbitrary endpoint, cached under ``api_get_<path>``."""
        if not use_cache:
            transport = self._require_transport()
            return await retry_with_backoff(
                lambda: request_json(transport, "GET", path, params=params),
                max_attempts=self._config.max_attempts,
                base_delay=self._config.retry_base_delay,
                sleep=self._sleep,
            )
        return await self._cached(
            generic_get_key(path, params),
            ttl if ttl is not None else self._config.cache_ttls.generic,
            lambda t: request_json(t, "GET", path, params=params),
            force_refresh=force_refresh,
        )

    async def post(self, path: str, data: Mapping[str, Any] | None = None, *, invalidate: Iterable[str] = ()) -> Any:
        return await self._mutate(lambda t: request_json(t, "POST", path, body=data), patterns=invalidate)

    async def put(self, path: str, data: Mapping[str, Any] | None = None, *, invalidate: Iterable[str] = ()) -> Any:
        return await self._mutate(lambda t: request_json(t, "PUT", path, body=data), patterns=invalidate)

    async def delete(self, path: str, *, invalidate: Iterable[str] = ()) -> Any:
        return await self._mutate(lambda t: request_json(t, "DELETE", path), patterns=invalidate)

    # ------------------------------------------------------------------
    # Cache utilities
    # ------------------------------------------------------------------

    def clear_cache(self) -> int:
        return self._cache.clear()

    def invalidate_cache(self, pattern: str) -> int:
        return self._cache.invalidate(pattern)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cache_keys(self) -> list[str]:
        return self._cache.keys()

    # ------------------------------------------------------------------
    # Live updates
    # ------------------------------------------------------------------

    @property
    def subscriptions(self) -> SubscriptionManager:
        return self._require_subscriptions()

    async def _watch(
        self,
        topics: Sequence[str],
        parsers: Mapping[str, Any],
        items: Sequence[Any],
        **kwargs: Any,
    ) -> LiveCollection[Any]:
        collection: LiveCollection[Any] = LiveCollection(
            self._require_subscriptions(),
            topics,
            parsers,
            items=items,
            clock=self._cache.clock,
            **kwargs,
        )
        await collection.mount()
        return collection

    async def watch_store_products(
        self,
        items: Sequence[Product] = (),
        *,
        on_change: Callable[[list[Product]], None] | None = None,
    ) -> LiveCollection[Product]:
        """Keep a store listing's stock and ratings current.

        The returned collection is already mounted; unmount it (or use it
        as an async context manager) when the listing goes away.
        """
        return await self._watch([STORE_PRODUCTS_CHANNEL], PRODUCT_PARSERS, items, on_change=on_change)

    async def watch_product(
        self,
        product_id: int | str,
        items: Sequence[Product] = (),
        *,
        on_change: Callable[[list[Product]], None] | None = None,
    ) -> LiveCollection[Product]:
        """Keep a single product page current."""
        return await self._watch([product_channel(product_id)], PRODUCT_PARSERS, items, on_change=on_change)

    async def watch_room_chat(
        self,
        room_id: int | str,
        messages: Sequence[Mapping[str, Any]] = (),
        *,
        on_change: Callable[[list[Any]], None] | None = None,
    ) -> LiveCollection[Any]:
        return await self._watch(
            [room_chat_channel(room_id)],
            CHAT_PARSERS,
            [dict(message) for message in messages],
            on_change=on_change,
        )

    async def watch_notifications(
        self,
        user_id: int | str,
        notifications: Sequence[Mapping[str, Any]] = (),
        *,
        on_change: Callable[[list[Any]], None] | None = None,
    ) -> LiveCollection[Any]:
        return await self._watch(
            [user_channel(user_id)],
            NOTIFICATION_PARSERS,
            [dict(notification) for notification in notifications],
            max_items=NOTIFICATION_LIMIT,
            on_change=on_change,
        )

    async def reload_store_products(
        self,
        collection: LiveCollection[Product],
        params: Mapping[str, Any] | None = None,
        *,
        force_refresh: bool = False,
    ) -> ProductPage:
        """Refetch a store listing into a live collection.

        Pushed stock and rating values newer than the snapshot survive the
        reload.  The snapshot counts as taken when its request was sent, also
        when it is served from cache.
        """
        as_of = self._cache.clock()
        page = await self.get_public_products(params, force_refresh=force_refresh)
        entry = self._cache.get_entry(store_products_key(params).key)
        if entry is not None:
            as_of = entry.snapshot_time
        collection.load(page.data, as_of=as_of)
        return page
