"""In-memory TTL cache shared by every scrape in the process.

Entries are immutable and replaced whole; there is no size bound and no
eviction other than expiry. A read at or after an entry's expiry is a miss
and drops the entry, so a stale value is never returned.

The clock is injected (milliseconds) so expiry can be tested without
sleeping. All access happens on one event loop, which makes each get/put a
single atomic step without locks.
"""

import time
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict

from nepsepulse.logger import get_logger

log = get_logger(__name__)

Clock = Callable[[], float]


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class CacheEntry(BaseModel):
    """One cached scrape result.

    Attributes:
        key: Cache key the entry was stored under.
        value: Records stored for the key.
        expiry: Absolute clock time (ms) from which the entry is stale.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    value: tuple[Any, ...]
    expiry: float


class TTLCache:
    """Key to record-sequence store with per-entry expiry.

    Attributes:
        clock: Callable returning the current time in milliseconds.

    Example:
        cache = TTLCache()
        cache.put("top-gainers:limit=all:pages=all", records, ttl_ms=60000)
        cache.get("top-gainers:limit=all:pages=all")
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or monotonic_ms
        self._entries: dict[str, CacheEntry] = {}
        self._hits: int = 0
        self._misses: int = 0
        self._expirations: int = 0

    def get(self, key: str) -> tuple[Any, ...] | None:
        """Return the cached value if ``now`` is strictly before its expiry."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if self.clock() >= entry.expiry:
            del self._entries[key]
            self._misses += 1
            self._expirations += 1
            log.debug("Cache entry expired", key=key)
            return None

        self._hits += 1
        return entry.value

    def put(self, key: str, value: Sequence[Any], ttl_ms: float) -> None:
        """Store ``value`` until ``now + ttl_ms``, replacing any prior entry."""
        self._entries[key] = CacheEntry(
            key=key,
            value=tuple(value),
            expiry=self.clock() + ttl_ms,
        )
        log.debug("Cache entry stored", key=key, ttl_ms=ttl_ms, size=len(value))

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> dict[str, int]:
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "expirations": self._expirations,
        }
