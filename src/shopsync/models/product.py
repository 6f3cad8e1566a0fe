"""Product models."""

from __future__ import annotations

from pydantic import AliasChoices, Field

from shopsync.models._base import ShopBaseModel


class Product(ShopBaseModel):
    """A product as listed in a room or in the public store.

    ``stock``, ``average_rating`` and ``reviews_count`` are the fields the
    push channel keeps up to date after the initial load.
    """

    id: int
    """Product identifier."""
    name: str = ""
    """Display name."""
    price: float | None = None
    """Unit price."""
    stock: int | None = Field(default=None, validation_alias=AliasChoices("stock", "current_stock"))
    """Units available."""
    average_rating: float | None = None
    """Mean review score (0-5)."""
    reviews_count: int = Field(default=0, validation_alias=AliasChoices("reviews_count", "review_count"))
    """Number of reviews."""
    room_id: int | None = None
    """Room the product belongs to."""
    category: str | None = None
    """Store category."""
    is_liked: bool = False
    """Whether the current user has favorited the product."""


class ProductPage(ShopBaseModel):
    """A page of the public store listing."""

    data: list[Product] = Field(default_factory=list)
    current_page: int = 1
    last_page: int = 1
    per_page: int | None = None
    total: int = 0


class RoomProducts(ShopBaseModel):
    """Products of a single room."""

    products: list[Product] = Field(default_factory=list)
