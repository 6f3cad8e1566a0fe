"""Cart and favorites models."""

from __future__ import annotations

from pydantic import AliasChoices, Field

from shopsync.models._base import ShopBaseModel
from shopsync.models.product import Product


class CartItem(ShopBaseModel):
    """One line of the user's cart."""

    id: int
    product_id: int | None = None
    quantity: int = 1
    product: Product | None = None


class Cart(ShopBaseModel):
    """The user's cart."""

    cart_items: list[CartItem] = Field(default_factory=list, validation_alias=AliasChoices("cart_items", "items"))
    total: float | None = None


class CartCount(ShopBaseModel):
    count: int = Field(default=0, validation_alias=AliasChoices("count", "cart_count"))


class Favorites(ShopBaseModel):
    favorites: list[Product] = Field(default_factory=list)


class FavoriteToggle(ShopBaseModel):
    """Result of toggling a favorite."""

    is_favorited: bool = False
    message: str = ""
