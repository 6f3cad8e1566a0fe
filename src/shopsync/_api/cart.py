"""Cart endpoints.

Endpoints:
  - GET    /cart
  - GET    /cart/count
  - POST   /cart
  - PUT    /cart/{item_id}
  - DELETE /cart/{item_id}
  - DELETE /cart
"""

from __future__ import annotations

from typing import Any

from shopsync._transport import Transport, request_json
from shopsync.models.cart import Cart, CartCount


async def fetch_cart(transport: Transport) -> Cart:
    return Cart.model_validate(await request_json(transport, "GET", "/cart"))


async def fetch_cart_count(transport: Transport) -> CartCount:
    decoded = await request_json(transport, "GET", "/cart/count")
    if isinstance(decoded, int):
        decoded = {"count": decoded}
    return CartCount.model_validate(decoded)


async def add_to_cart(transport: Transport, product_id: int | str, quantity: int) -> Any:
    if quantity < 1:
        raise ValueError(f"quantity must be >= 1, got {quantity}")
    return await request_json(transport, "POST", "/cart", body={"product_id": product_id, "quantity": quantity})


async def update_cart_item(transport: Transport, item_id: int | str, quantity: int) -> Any:
    if quantity < 1:
        raise ValueError(f"quantity must be >= 1, got {quantity}")
    return await request_json(transport, "PUT", f"/cart/{item_id}", body={"quantity": quantity})


async def remove_from_cart(transport: Transport, item_id: int | str) -> Any:
    return await request_json(transport, "DELETE", f"/cart/{item_id}")


async def clear_cart(transport: Transport) -> Any:
    return await request_json(transport, "DELETE", "/cart")
