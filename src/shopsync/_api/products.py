"""Room product endpoints.

Endpoints:
  - GET    /rooms/{room_id}/products
  - POST   /rooms/{room_id}/products
  - GET    /products/{product_id}
  - POST   /products/{product_id}   (``_method=PUT`` form override)
  - DELETE /products/{product_id}
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from shopsync._transport import Transport, request_json
from shopsync.keys import clean_params
from shopsync.models.product import Product, RoomProducts

_logger = logging.getLogger(__name__)


def _unwrap_product(decoded: Any) -> Any:
    # Single-product responses come either bare or as {"product": {...}}.
    if isinstance(decoded, dict) and isinstance(decoded.get("product"), dict):
        return decoded["product"]
    return decoded


async def fetch_room_products(
    transport: Transport,
    room_id: int | str,
    params: Mapping[str, Any] | None = None,
) -> RoomProducts:
    """Fetch the products listed in a room."""
    decoded = await request_json(transport, "GET", f"/rooms/{room_id}/products", params=clean_params(params) or None)
    if isinstance(decoded, list):
        decoded = {"products": decoded}
    model = RoomProducts.model_validate(decoded)
    _logger.debug("Room %s products decoded count=%d", room_id, len(model.products))
    return model


async def fetch_product(transport: Transport, product_id: int | str) -> Product:
    decoded = await request_json(transport, "GET", f"/products/{product_id}")
    return Product.model_validate(_unwrap_product(decoded))


async def create_product(transport: Transport, room_id: int | str, data: Mapping[str, Any]) -> Any:
    return await request_json(transport, "POST", f"/rooms/{room_id}/products", body=clean_params(data))


async def update_product(transport: Transport, product_id: int | str, data: Mapping[str, Any]) -> Any:
    # The backend only accepts multipart-style updates through POST + _method.
    body = {**clean_params(data), "_method": "PUT"}
    return await request_json(transport, "POST", f"/products/{product_id}", body=body)


async def delete_product(transport: Transport, product_id: int | str) -> Any:
    return await request_json(transport, "DELETE", f"/products/{product_id}")
