"""Favorites endpoints.

Endpoints:
  - GET  /favorites
  - POST /favorites/toggle
"""

from __future__ import annotations

from shopsync._transport import Transport, request_json
from shopsync.models.cart import FavoriteToggle, Favorites


async def fetch_favorites(transport: Transport) -> Favorites:
    decoded = await request_json(transport, "GET", "/favorites")
    if isinstance(decoded, list):
        decoded = {"favorites": decoded}
    return Favorites.model_validate(decoded)


async def toggle_favorite(transport: Transport, product_id: int | str) -> FavoriteToggle:
    decoded = await request_json(transport, "POST", "/favorites/toggle", body={"product_id": product_id})
    return FavoriteToggle.model_validate(decoded)
