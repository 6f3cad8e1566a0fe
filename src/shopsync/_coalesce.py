"""In-flight request de-duplication.

Concurrent callers asking for the same cache key share one underlying
operation and observe the same result or the same exception.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class PendingRequest:
    """The single in-flight operation registered for a key."""

    key: str
    task: asyncio.Task[Any]
    waiters: int = field(default=1)


class RequestCoalescer:
    """At most one pending operation per key.

    Usage::

        coalescer = RequestCoalescer()
        products = await coalescer.coalesce("products_room_7", fetch_products)
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingRequest] = {}

    async def coalesce(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Join the pending operation for *key*, or start *operation*.

        A caller that is cancelled while waiting does not cancel the shared
        operation; the remaining waiters still receive its result.
        """
        pending = self._pending.get(key)
        if pending is not None:
            pending.waiters += 1
            _logger.debug("Coalescing request for %s (waiters: %d)", key, pending.waiters)
        else:
            _logger.debug("Initiating request for %s", key)
            task: asyncio.Task[Any] = asyncio.ensure_future(self._run(key, operation))
            task.add_done_callback(_retrieve_exception)
            pending = PendingRequest(key=key, task=task)
            self._pending[key] = pending
        try:
            return await asyncio.shield(pending.task)
        finally:
            pending.waiters -= 1

    async def _run(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        finally:
            # Deregister before waiters resume so a caller reacting to the
            # result can start a fresh request for the same key.
            current = self._pending.get(key)
            if current is not None and current.task is asyncio.current_task():
                del self._pending[key]

    @property
    def active_requests(self) -> int:
        """Number of keys with an operation in flight."""
        return len(self._pending)

    def pending_keys(self) -> list[str]:
        return list(self._pending)

    def waiters(self, key: str) -> int:
        """Callers still waiting on the operation for *key*."""
        pending = self._pending.get(key)
        return pending.waiters if pending is not None else 0


def _retrieve_exception(task: asyncio.Task[Any]) -> None:
    # Every waiter may have been cancelled; mark the outcome as seen anyway.
    if not task.cancelled():
        task.exception()


_request_coalescer: RequestCoalescer | None = None


def get_request_coalescer() -> RequestCoalescer:
    """Get or create the process-wide coalescer."""
    global _request_coalescer
    if _request_coalescer is None:
        _request_coalescer = RequestCoalescer()
    return _request_coalescer
