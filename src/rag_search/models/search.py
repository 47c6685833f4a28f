"""Search request/response models with score breakdowns."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class SearchMode(str, Enum):
    """Retrieval strategy requested by the caller."""

    KEYWORD = "Keyword"
    VECTOR = "Vector"
    HYBRID = "Hybrid"
    SEMANTIC = "Semantic"

    @property
    def needs_embedding(self) -> bool:
        return self is not SearchMode.KEYWORD


class DateRange(BaseModel):
    """Inclusive bounds on a document's creation time."""

    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class FileSizeRange(BaseModel):
    """Inclusive bounds on a document's size in bytes."""

    min_bytes: int | None = None
    max_bytes: int | None = None


class SearchFilters(BaseModel):
    """Structured filters applied before scoring."""

    file_kinds: list[str] | None = None
    date_range: DateRange | None = None
    size_range: FileSizeRange | None = None
    source_prefix: str | None = None


class SearchRequest(BaseModel):
    """Search request from the caller."""

    query: str
    mode: SearchMode = SearchMode.HYBRID
    content_categories: list[str] | None = None  # None = all categories
    max_results: int | None = Field(default=None, ge=1)
    filters: SearchFilters = Field(default_factory=SearchFilters)


class ScoreBreakdown(BaseModel):
    """Score breakdown for a search result."""

    keyword_score: float = 0.0
    vector_score: float = 0.0
    final_score: float = 0.0


class SearchResult(BaseModel):
    """A single search result with the document's displayable fields."""

    document_id: str
    score: float
    keyword_score: float = 0.0
    vector_score: float = 0.0
    title: str
    summary: str
    snippet: str  # With highlighted terms
    content_category: str
    file_kind: str
    source_locator: str
    author: str | None = None
    language: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None
    indexed_at: datetime | None = None
    size_bytes: int = 0
    key_phrases: list[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    """Search response returned to the caller."""

    query: str
    results: list[SearchResult]
    total_results: int
    execution_time_ms: float
    mode_used: SearchMode
    degraded: bool = False
    generation: int = 0


class UpsertError(BaseModel):
    """A document rejected from an upsert batch."""

    id: str
    reason: str


class UpsertResult(BaseModel):
    """Outcome of an upsert batch."""

    accepted: int = 0
    errors: list[UpsertError] = Field(default_factory=list)
    generation: int | None = None


class IndexStatus(BaseModel):
    """Current state of the served snapshot and the refresher."""

    document_count: int
    embedding_count: int
    generation: int
    dimension: int | None = None
    refresh_state: str
    last_refresh_at: datetime | None = None
    last_refresh_error: str | None = None
