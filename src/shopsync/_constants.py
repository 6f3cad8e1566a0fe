"""Internal constants shared across the library."""

USER_AGENT = "shopsync/1 (+aiohttp)"

# ------------------------------------------------------------------
# Push channels
# ------------------------------------------------------------------

STORE_PRODUCTS_CHANNEL = "store.products"
_PRODUCT_CHANNEL = "product.{product_id}"
_USER_CHANNEL = "private-user.{user_id}"
_ROOM_CHAT_CHANNEL = "private-chat.room.{room_id}"


def product_channel(product_id: int | str) -> str:
    """Channel carrying stock/rating events for one product."""
    return _PRODUCT_CHANNEL.format(product_id=product_id)


def user_channel(user_id: int | str) -> str:
    """Private notification channel of a user."""
    return _USER_CHANNEL.format(user_id=user_id)


def room_chat_channel(room_id: int | str) -> str:
    """Private chat channel of a room."""
    return _ROOM_CHAT_CHANNEL.format(room_id=room_id)


# ------------------------------------------------------------------
# Push event names
# ------------------------------------------------------------------

STOCK_UPDATED = "product.stock.updated"
RATING_UPDATED = "product.rating.updated"

MESSAGE_SENT = "message.sent"
MESSAGE_EDITED = "message.edited"
MESSAGE_DELETED = "message.deleted"

NOTIFICATION_CREATED = "notification.created"
NOTIFICATION_READ = "notification.read"
NOTIFICATION_DELETED = "notification.deleted"
