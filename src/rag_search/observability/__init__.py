"""Observability package."""

from rag_search.observability.metrics import (
    DEGRADED_SEARCHES,
    EMBEDDING_CACHE_HITS,
    EMBEDDING_CACHE_MISSES,
    INDEXED_DOCUMENTS,
    PROVIDER_CALLS,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    SNAPSHOT_GENERATION,
    SNAPSHOT_REFRESH_TIME,
    SNAPSHOT_REFRESHES,
    get_metrics,
)

__all__ = [
    "DEGRADED_SEARCHES",
    "EMBEDDING_CACHE_HITS",
    "EMBEDDING_CACHE_MISSES",
    "INDEXED_DOCUMENTS",
    "PROVIDER_CALLS",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "SNAPSHOT_GENERATION",
    "SNAPSHOT_REFRESH_TIME",
    "SNAPSHOT_REFRESHES",
    "get_metrics",
]
