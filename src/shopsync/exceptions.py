"""Custom exception hierarchy for shopsync."""

from __future__ import annotations


class ShopSyncError(Exception):
    """Base exception for all shopsync errors."""


class ShopSyncConfigError(ShopSyncError):
    """Invalid or missing configuration."""


class ShopSyncTransportError(ShopSyncError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class ShopSyncClientError(ShopSyncTransportError):
    """The backend rejected the request (status < 500).

    Bad input, missing auth or an unknown resource.  Retrying the same
    request cannot succeed, so the retry executor re-raises immediately.
    """


class ShopSyncTransientError(ShopSyncTransportError):
    """Server error (status >= 500), timeout or connection failure.

    ``status_code`` is ``None`` when the request never produced a response.
    """


class ShopSyncReconcileError(ShopSyncError):
    """A push payload could not be turned into an entity change."""


class ShopSyncPushError(ShopSyncError):
    """Push transport failure (connect, subscribe)."""
