"""Data models for storefront API responses."""

from shopsync.models._base import ShopBaseModel
from shopsync.models.cart import Cart, CartCount, CartItem, FavoriteToggle, Favorites
from shopsync.models.product import Product, ProductPage, RoomProducts

__all__ = [
    "Cart",
    "CartCount",
    "CartItem",
    "FavoriteToggle",
    "Favorites",
    "Product",
    "ProductPage",
    "RoomProducts",
    "ShopBaseModel",
]
