"""shopsync - Async data sync layer for a storefront/room-chat backend."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("shopsync")
except PackageNotFoundError:
    __version__ = "0+local"
from shopsync._cache import CacheEntry, RequestCache, get_request_cache
from shopsync._coalesce import RequestCoalescer, get_request_coalescer
from shopsync._push import MqttPushTransport, PushMessage, PushTransport
from shopsync._retry import FailureKind, classify_failure, retry_with_backoff
from shopsync._transport import ClientFailure, HttpTransport, Success, TransientFailure, Transport
from shopsync.client import ShopClient
from shopsync.config import CacheTtls, ShopSyncConfig
from shopsync.exceptions import (
    ShopSyncClientError,
    ShopSyncConfigError,
    ShopSyncError,
    ShopSyncPushError,
    ShopSyncReconcileError,
    ShopSyncTransientError,
    ShopSyncTransportError,
)
from shopsync.live import LiveCollection, Subscription, SubscriptionHandlers, SubscriptionManager, SubscriptionState
from shopsync.models import Cart, CartCount, CartItem, FavoriteToggle, Favorites, Product, ProductPage, RoomProducts

__all__ = [
    "__version__",
    "CacheEntry",
    "CacheTtls",
    "Cart",
    "CartCount",
    "CartItem",
    "ClientFailure",
    "FailureKind",
    "FavoriteToggle",
    "Favorites",
    "HttpTransport",
    "LiveCollection",
    "MqttPushTransport",
    "Product",
    "ProductPage",
    "PushMessage",
    "PushTransport",
    "RequestCache",
    "RequestCoalescer",
    "RoomProducts",
    "ShopClient",
    "ShopSyncClientError",
    "ShopSyncConfig",
    "ShopSyncConfigError",
    "ShopSyncError",
    "ShopSyncPushError",
    "ShopSyncReconcileError",
    "ShopSyncTransientError",
    "ShopSyncTransportError",
    "Subscription",
    "SubscriptionHandlers",
    "SubscriptionManager",
    "SubscriptionState",
    "Success",
    "TransientFailure",
    "Transport",
    "classify_failure",
    "get_request_cache",
    "get_request_coalescer",
    "retry_with_backoff",
]
