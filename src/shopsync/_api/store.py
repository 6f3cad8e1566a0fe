"""Public store endpoints.

Endpoints:
  - GET /store/products
  - GET /store/categories
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from shopsync._transport import Transport, request_json
from shopsync.keys import clean_params
from shopsync.models.product import ProductPage

_logger = logging.getLogger(__name__)


async def fetch_public_products(transport: Transport, params: Mapping[str, Any] | None = None) -> ProductPage:
    """Fetch one page of the public store listing.

    Unset filters (``None`` or ``""``) are left out of the query string.
    """
    decoded = await request_json(transport, "GET", "/store/products", params=clean_params(params))
    page = ProductPage.model_validate(decoded)
    _logger.debug("Store page %d/%d decoded count=%d", page.current_page, page.last_page, len(page.data))
    return page


async def fetch_categories(transport: Transport) -> list[str]:
    decoded = await request_json(transport, "GET", "/store/categories")
    items = decoded if isinstance(decoded, list) else []
    return [str(item) for item in items]
