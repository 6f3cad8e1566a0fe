from __future__ import annotations

from shopsync.keys import (
    ROOM_PRODUCTS_TAG,
    generic_get_key,
    params_json,
    product_key,
    room_products_key,
    store_products_key,
)


def test_identical_params_map_to_the_same_key() -> None:
    first = store_products_key({"search": "lamp", "category": "lighting", "page": 1})
    second = store_products_key({"page": 1, "category": "lighting", "search": "lamp", "sort": None})

    assert first == second
    assert first.key == 'store_products_{"category":"lighting","page":1,"search":"lamp"}'


def test_unset_params_are_dropped() -> None:
    assert params_json({"search": "", "category": None}) == "{}"
    assert store_products_key().key == "store_products_{}"


def test_room_key_carries_room_and_listing_tags() -> None:
    key = room_products_key(5, {"page": 2})

    assert key.key == 'products_room_5_{"page":2}'
    assert key.tags == frozenset({"room:5", ROOM_PRODUCTS_TAG})


def test_product_and_generic_keys() -> None:
    assert product_key(9).key == "product_9"
    assert product_key(9).tags == frozenset({"product:9"})
    assert generic_get_key("/orders").key == "api_get_/orders"
    assert generic_get_key("/orders", {"status": "open"}).key == 'api_get_/orders_{"status":"open"}'
