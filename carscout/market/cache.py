"""
Time-bounded response cache.

Entries expire lazily: an entry older than the TTL is treated as absent and
dropped on the lookup that finds it. There is no background sweep; memory is
bounded only by the number of distinct searches, which callers keep small.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from carscout.market.schemas import Listing


@dataclass(frozen=True)
class CacheEntry:
    """Cached payload with its write time (clock seconds)."""

    listings: tuple[Listing, ...]
    written_at: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.written_at > ttl_seconds


class ResponseCache:
    """Thread-safe key -> listings store with lazy TTL expiry.

    `get` returns None for both absent and expired keys; the remedy (fetch
    again) is the same for both.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> list[Listing] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock(), self.ttl_seconds):
                del self._entries[key]
                return None
            return list(entry.listings)

    def set(self, key: str, listings: list[Listing]) -> None:
        """Store listings, replacing any previous entry for `key`."""
        with self._lock:
            self._entries[key] = CacheEntry(tuple(listings), self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None
