"""Bounded exponential-backoff retry for async operations."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from shopsync.exceptions import ShopSyncClientError

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailureKind(enum.Enum):
    """How the retry executor treats a failed attempt."""

    CLIENT = "client"
    TRANSIENT = "transient"


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception onto :class:`FailureKind`.

    Only :class:`ShopSyncClientError` is fatal.  Anything else, including
    errors that carry no status at all, is considered transient.
    """
    if isinstance(exc, ShopSyncClientError):
        return FailureKind.CLIENT
    return FailureKind.TRANSIENT


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay to wait after failed attempt *attempt* (0-indexed)."""
    return base_delay * (2**attempt)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    base_delay: float,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Run *operation* up to *max_attempts* times in total.

    Client errors are raised on the spot.  Transient errors are retried
    after ``base_delay * 2**i`` seconds; once the budget is spent the last
    error propagates unchanged.
    """
    attempts = max(1, max_attempts)
    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as exc:
            if classify_failure(exc) is FailureKind.CLIENT:
                raise
            if attempt + 1 >= attempts:
                _logger.warning("Giving up after %d attempt(s): %s", attempts, exc)
                raise
            delay = backoff_delay(attempt, base_delay)
            _logger.debug(
                "Attempt %d/%d failed (%s); retrying in %.2fs",
                attempt + 1,
                attempts,
                exc,
                delay,
            )
            await sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
