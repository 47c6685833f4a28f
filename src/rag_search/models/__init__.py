"""Models package."""

from rag_search.models.document import (
    Document,
    Embedding,
    compute_content_hash,
    normalize_text,
)
from rag_search.models.search import (
    DateRange,
    FileSizeRange,
    IndexStatus,
    ScoreBreakdown,
    SearchFilters,
    SearchMode,
    SearchRequest,
    SearchResponse,
    SearchResult,
    UpsertError,
    UpsertResult,
)

__all__ = [
    "DateRange",
    "Document",
    "Embedding",
    "FileSizeRange",
    "IndexStatus",
    "ScoreBreakdown",
    "SearchFilters",
    "SearchMode",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "UpsertError",
    "UpsertResult",
    "compute_content_hash",
    "normalize_text",
]
