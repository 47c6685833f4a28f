"""Storage package."""

from rag_search.storage.database import BlobORM, SqlObjectStore
from rag_search.storage.object_store import FileObjectStore, ObjectStore
from rag_search.storage.repository import (
    DocumentRecord,
    DocumentStore,
    EmbeddingRecord,
    StoreState,
    consistent_embeddings,
)

__all__ = [
    "BlobORM",
    "DocumentRecord",
    "DocumentStore",
    "EmbeddingRecord",
    "FileObjectStore",
    "ObjectStore",
    "SqlObjectStore",
    "StoreState",
    "consistent_embeddings",
]
