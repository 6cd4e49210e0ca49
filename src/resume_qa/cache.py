"""Bounded caches for embeddings and query results.

Both caches evict the oldest *inserted* entry when full. Reads do not refresh
an entry's position, so this is FIFO rather than true least-recently-used.
"""

from __future__ import annotations

import copy
import re
import time
import zlib
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

from resume_qa.types import QueryResult

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")


@dataclass(slots=True)
class CacheEntry(Generic[T]):
    key: str
    value: T
    timestamp: float


@dataclass(slots=True)
class CacheEvent:
    """Notification sent to a cache observer.

    `kind` is one of: hit, miss, store, evict, expire, invalid.
    """

    cache: str
    kind: str
    key: str


CacheObserver = Callable[[CacheEvent], None]


def cache_key(text: str) -> str:
    """Deterministic, non-cryptographic key for normalized text.

    Distinct texts may collide; that is accepted for a cache of this size.
    """
    normalized = _WHITESPACE.sub(" ", text.lower()).strip()
    return format(zlib.crc32(normalized.encode("utf-8")), "08x")


class _BoundedCache(Generic[T]):
    name = "cache"

    def __init__(self, max_size: int, *, clock: Callable[[], float] = time.monotonic) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._observer: CacheObserver | None = None
        self._hits = 0
        self._misses = 0

    def set_observer(self, observer: CacheObserver | None) -> None:
        """Set an optional callback invoked on every cache event."""
        self._observer = observer

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, text: str) -> T | None:
        key = cache_key(text)
        entry = self._entries.get(key)
        if entry is None or not self._is_usable(entry):
            self._misses += 1
            self._notify("miss", key)
            return None
        self._hits += 1
        self._notify("hit", key)
        return self._copy(entry.value)

    def put(self, text: str, value: T) -> bool:
        key = cache_key(text)
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            self._notify("evict", evicted)
        self._entries[key] = CacheEntry(key=key, value=self._copy(value), timestamp=self._clock())
        self._notify("store", key)
        return True

    def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        return removed

    def stats(self) -> dict[str, float | int]:
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "utilization": len(self._entries) / self.max_size,
        }

    def _is_usable(self, entry: CacheEntry[T]) -> bool:
        return True

    def _copy(self, value: T) -> T:
        return copy.deepcopy(value)

    def _notify(self, kind: str, key: str) -> None:
        if self._observer is not None:
            self._observer(CacheEvent(cache=self.name, kind=kind, key=key))


class EmbeddingCache(_BoundedCache[list[float]]):
    """Caches embedding vectors keyed by the text they were computed from.

    When `dimension` is set, entries of any other length are discarded on
    read so the caller regenerates them.
    """

    name = "embedding"

    def __init__(
        self,
        max_size: int = 200,
        *,
        dimension: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(max_size, clock=clock)
        self.dimension = dimension

    def _is_usable(self, entry: CacheEntry[list[float]]) -> bool:
        if self.dimension is None or len(entry.value) == self.dimension:
            return True
        logger.warning(
            "embedding_cache_dimension_mismatch",
            expected=self.dimension,
            actual=len(entry.value),
        )
        del self._entries[entry.key]
        self._notify("invalid", entry.key)
        return False

    def _copy(self, value: list[float]) -> list[float]:
        return list(value)


class QueryResultCache(_BoundedCache[QueryResult]):
    """Caches final query results for a fixed time-to-live.

    Expiry is lazy: an expired entry is removed when it is read. `sweep()`
    removes every expired entry at once.
    """

    name = "query_result"

    def __init__(
        self,
        max_size: int = 50,
        *,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(max_size, clock=clock)
        self.ttl_seconds = ttl_seconds

    def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in expired:
            del self._entries[key]
            self._notify("expire", key)
        return len(expired)

    def _is_usable(self, entry: CacheEntry[QueryResult]) -> bool:
        if not self._expired(entry, self._clock()):
            return True
        del self._entries[entry.key]
        self._notify("expire", entry.key)
        return False

    def _expired(self, entry: CacheEntry[QueryResult], now: float) -> bool:
        return now - entry.timestamp >= self.ttl_seconds
