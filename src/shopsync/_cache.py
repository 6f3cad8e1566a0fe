"""Process-wide request cache with per-entry TTL and invalidation tags."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached response and the monotonic instant it stops being valid."""

    key: str
    value: Any
    expires_at: float
    stored_at: float
    tags: frozenset[str] = field(default_factory=frozenset)
    requested_at: float | None = None
    """Clock reading taken when the request that produced ``value`` was sent."""

    @property
    def snapshot_time(self) -> float:
        return self.stored_at if self.requested_at is None else self.requested_at

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class RequestCache:
    """Key/value store with lazy TTL eviction.

    Expired entries are only removed when they are read; there is no
    background sweep.  Entries can be dropped by key substring
    (:meth:`invalidate`) or by exact tag (:meth:`invalidate_tags`).
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    def set(
        self,
        key: str,
        value: Any,
        ttl: float,
        *,
        tags: Iterable[str] = (),
        requested_at: float | None = None,
    ) -> None:
        """Store *value* under *key* for *ttl* seconds, replacing any previous entry.

        *requested_at* is the clock reading taken when the request was sent;
        it defaults to the storing time.
        """
        now = self._clock()
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            expires_at=now + ttl,
            stored_at=now,
            tags=frozenset(tags),
            requested_at=now if requested_at is None else requested_at,
        )

    def get_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            _logger.debug("Cache entry expired: %s", key)
            return None
        return entry

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` if absent or expired."""
        entry = self.get_entry(key)
        return None if entry is None else entry.value

    def invalidate(self, pattern: str) -> int:
        """Drop every entry whose key contains *pattern*.

        Returns
        -------
        int
            Number of entries removed.
        """
        to_delete = [k for k in self._entries if pattern in k]
        for key in to_delete:
            del self._entries[key]
        if to_delete:
            _logger.debug("Invalidated %d entries matching %r", len(to_delete), pattern)
        return len(to_delete)

    def invalidate_tags(self, *tags: str) -> int:
        """Drop every entry carrying at least one of *tags* (exact match)."""
        wanted = set(tags)
        to_delete = [k for k, entry in self._entries.items() if entry.tags & wanted]
        for key in to_delete:
            del self._entries[key]
        if to_delete:
            _logger.debug("Invalidated %d entries tagged %s", len(to_delete), sorted(wanted))
        return len(to_delete)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        _logger.debug("Cleared %d cache entries", count)
        return count

    def keys(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        # Membership check without eviction; expired entries still count.
        return key in self._entries


_request_cache: RequestCache | None = None


def get_request_cache() -> RequestCache:
    """Get or create the process-wide cache."""
    global _request_cache
    if _request_cache is None:
        _request_cache = RequestCache()
    return _request_cache
