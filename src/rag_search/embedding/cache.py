"""LRU cache for query embeddings."""

import time
from collections import OrderedDict
from dataclasses import dataclass

from rag_search.models.document import normalize_text


@dataclass
class CacheEntry:
    """A cached query vector with metadata."""

    vector: list[float]
    created_at: float
    hits: int = 0


class QueryEmbeddingCache:
    """
    LRU cache for query embeddings.

    Features:
    - Size-limited with LRU eviction
    - TTL-based expiration
    - Keys are normalized query text, so "Azure  Functions" and
      "azure functions" share an entry
    """

    def __init__(self, max_size: int = 1000, ttl_seconds: float = 3600):
        """
        Initialize the query cache.

        Args:
            max_size: Maximum number of entries to cache
            ttl_seconds: Time-to-live for cache entries in seconds
        """
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds

        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def get(self, query: str) -> list[float] | None:
        """Return the cached vector for a query, or None if missing/expired."""
        key = normalize_text(query)

        entry = self._cache.get(key)
        if entry is None:
            self._misses += 1
            return None

        # Check TTL
        if time.monotonic() - entry.created_at > self.ttl_seconds:
            del self._cache[key]
            self._misses += 1
            return None

        # Move to end (most recently used)
        self._cache.move_to_end(key)
        entry.hits += 1
        self._hits += 1
        return entry.vector

    def set(self, query: str, vector: list[float]):
        """Cache the vector for a query."""
        if self.max_size <= 0:
            return
        key = normalize_text(query)
        self._cache.pop(key, None)

        # Evict oldest if at capacity
        while len(self._cache) >= self.max_size:
            self._cache.popitem(last=False)

        self._cache[key] = CacheEntry(vector=vector, created_at=time.monotonic())

    def invalidate(self):
        """Clear all cached entries."""
        self._cache.clear()

    @property
    def size(self) -> int:
        return len(self._cache)

    @property
    def hit_rate(self) -> float:
        total = self._hits + self._misses
        return self._hits / total if total > 0 else 0.0

    @property
    def stats(self) -> dict:
        return {
            "size": self.size,
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self.hit_rate,
        }
