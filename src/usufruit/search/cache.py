"""
Per-process cache of raw semantic search results.

Entries are keyed by ``(library_id, query, threshold)`` and expire after a
fixed TTL. Expired entries are not swept on a timer; they are evicted when a
write finds the cache above its size limit, or ignored on read.
"""

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str, float]
SemanticHits = list[tuple[str, float]]


class SemanticSearchCache:
    """TTL cache for (book id, score) lists."""

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[CacheKey, tuple[float, SemanticHits]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(library_id: str, query: str, threshold: float) -> CacheKey:
        return (library_id, query.strip().lower(), round(threshold, 6))

    def get(self, library_id: str, query: str, threshold: float) -> SemanticHits | None:
        key = self.key(library_id, query, threshold)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, hits = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            return list(hits)

    def set(self, library_id: str, query: str, threshold: float, hits: SemanticHits) -> None:
        key = self.key(library_id, query, threshold)
        with self._lock:
            self._entries[key] = (self._clock(), list(hits))
            if len(self._entries) > self.max_entries:
                self._evict_expired()

    def invalidate_library(self, library_id: str) -> None:
        """Drop every entry of a library, e.g. after its catalogue changed."""
        with self._lock:
            for key in [k for k in self._entries if k[0] == library_id]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (at, _) in self._entries.items() if now - at > self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Evicted %d expired semantic cache entries", len(expired))
