"""Indexing package: write path, snapshots and background refresh."""

from rag_search.indexing.refresher import RefreshState, SnapshotRefresher
from rag_search.indexing.snapshot import IndexSnapshot
from rag_search.indexing.writer import IndexWriter

__all__ = [
    "IndexSnapshot",
    "IndexWriter",
    "RefreshState",
    "SnapshotRefresher",
]
