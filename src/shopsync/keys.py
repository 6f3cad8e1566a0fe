"""Cache keys and invalidation tags for every cached resource.

A key is derived from the endpoint plus its serialized parameters, so
identical logical requests always map to the same key.  Tags group keys
that one mutation can make stale; invalidating by tag is an exact set
lookup, so ``room:5`` never touches the entries of room 55.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

ROOM_PRODUCTS_TAG = "room-products"
STORE_LISTING_TAG = "store-listing"
CATEGORIES_TAG = "categories"
CART_TAG = "cart"
FAVORITES_TAG = "favorites"
GENERIC_TAG = "generic"


def room_tag(room_id: int | str) -> str:
    return f"room:{room_id}"


def product_tag(product_id: int | str) -> str:
    return f"product:{product_id}"


@dataclass(frozen=True)
class CacheKey:
    """A cache key together with the tags its entry is stored under."""

    key: str
    tags: frozenset[str] = field(default_factory=frozenset)


def clean_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop unset query parameters (``None`` and empty strings)."""
    if not params:
        return {}
    return {k: v for k, v in params.items() if v is not None and v != ""}


def params_json(params: Mapping[str, Any] | None) -> str:
    """Canonical JSON for a parameter set (sorted keys, compact separators)."""
    return json.dumps(clean_params(params), sort_keys=True, separators=(",", ":"), default=str)


def room_products_key(room_id: int | str, params: Mapping[str, Any] | None = None) -> CacheKey:
    return CacheKey(
        key=f"products_room_{room_id}_{params_json(params)}",
        tags=frozenset({room_tag(room_id), ROOM_PRODUCTS_TAG}),
    )


def product_key(product_id: int | str) -> CacheKey:
    return CacheKey(key=f"product_{product_id}", tags=frozenset({product_tag(product_id)}))


def store_products_key(params: Mapping[str, Any] | None = None) -> CacheKey:
    return CacheKey(key=f"store_products_{params_json(params)}", tags=frozenset({STORE_LISTING_TAG}))


def categories_key() -> CacheKey:
    return CacheKey(key="store_categories", tags=frozenset({CATEGORIES_TAG}))


def cart_key() -> CacheKey:
    return CacheKey(key="user_cart", tags=frozenset({CART_TAG}))


def cart_count_key() -> CacheKey:
    return CacheKey(key="cart_count", tags=frozenset({CART_TAG}))


def favorites_key() -> CacheKey:
    return CacheKey(key="user_favorites", tags=frozenset({FAVORITES_TAG}))


def generic_get_key(path: str, params: Mapping[str, Any] | None = None) -> CacheKey:
    suffix = f"_{params_json(params)}" if clean_params(params) else ""
    return CacheKey(key=f"api_get_{path}{suffix}", tags=frozenset({GENERIC_TAG}))
