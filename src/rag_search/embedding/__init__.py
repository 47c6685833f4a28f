"""Embedding package."""

from rag_search.embedding.cache import QueryEmbeddingCache
from rag_search.embedding.generator import EmbedOutcome, EmbeddingGenerator, OutcomeStatus
from rag_search.embedding.local import LocalEmbeddingProvider
from rag_search.embedding.provider import EmbeddingProvider, HttpEmbeddingProvider

__all__ = [
    "EmbedOutcome",
    "EmbeddingGenerator",
    "EmbeddingProvider",
    "HttpEmbeddingProvider",
    "LocalEmbeddingProvider",
    "OutcomeStatus",
    "QueryEmbeddingCache",
]
