"""Query execution against an index snapshot."""

import math
import re
import time
from typing import TYPE_CHECKING, Awaitable, Callable

import numpy as np
import structlog

from rag_search.errors import ProviderError, ProviderErrorKind
from rag_search.models.document import Document
from rag_search.models.search import (
    SearchFilters,
    SearchMode,
    SearchRequest,
    SearchResponse,
    SearchResult,
)
from rag_search.retrieval.hybrid import HybridResult, HybridScorer
from rag_search.retrieval.keyword import keyword_score, tokenize
from rag_search.retrieval.vector import cosine_scores

if TYPE_CHECKING:
    from rag_search.indexing.snapshot import IndexSnapshot

logger = structlog.get_logger()

QueryEmbedder = Callable[[str], Awaitable[list[float]]]


class SearchExecutor:
    """
    Stateless query engine: filter, score, rank, shape.

    All state lives in the snapshot passed to execute(); the only outside
    call is the query embedding, and when that fails the request is
    answered with keyword scoring and flagged as degraded.
    """

    def __init__(
        self,
        embed_query: QueryEmbedder,
        scorer: HybridScorer | None = None,
        semantic_boost: float = 1.2,
        default_max_results: int = 10,
        max_results_limit: int = 50,
    ):
        self.embed_query = embed_query
        self.scorer = scorer or HybridScorer()
        self.semantic_boost = semantic_boost
        self.default_max_results = default_max_results
        self.max_results_limit = max_results_limit

    async def execute(self, snapshot: "IndexSnapshot", request: SearchRequest) -> SearchResponse:
        """
        Run one search against a fixed snapshot.

        Args:
            snapshot: Snapshot captured by the caller for this query
            request: Query, mode, category filter, structured filters, limit

        Returns:
            SearchResponse with ranked results and the mode actually used
        """
        start_time = time.perf_counter()
        mode_used = request.mode
        degraded = False

        candidates = [
            doc for doc in snapshot.documents.values()
            if self._passes_filters(doc, request.content_categories, request.filters)
        ]

        query_terms = tokenize(request.query)
        keyword_scores = {}
        for doc in candidates:
            score = keyword_score(query_terms, snapshot.terms[doc.id])
            if score > 0:
                keyword_scores[doc.id] = score

        vector_scores: dict[str, float] = {}
        if request.mode.needs_embedding:
            try:
                query_vector = await self.embed_query(request.query)
                vector_scores = self._vector_scores(snapshot, candidates, query_vector)
            except ProviderError as e:
                logger.warning(
                    "search_degraded",
                    requested_mode=request.mode.value,
                    error=str(e),
                )
                mode_used = SearchMode.KEYWORD
                degraded = True

        if mode_used is SearchMode.SEMANTIC:
            vector_scores = {
                doc_id: _clamp(v * self.semantic_boost) for doc_id, v in vector_scores.items()
            }

        if mode_used is SearchMode.KEYWORD:
            scored = self.scorer.keyword_only(keyword_scores)
        elif mode_used is SearchMode.HYBRID:
            scored = self.scorer.combine(keyword_scores, vector_scores)
        else:
            scored = self.scorer.vector_only(vector_scores, keyword_scores)

        ranked = self._rank(scored, snapshot)
        max_results = min(request.max_results or self.default_max_results, self.max_results_limit)
        results = [
            self._to_result(snapshot.documents[r.document_id], r, query_terms)
            for r in ranked[:max_results]
        ]

        return SearchResponse(
            query=request.query,
            results=results,
            total_results=len(ranked),
            execution_time_ms=(time.perf_counter() - start_time) * 1000,
            mode_used=mode_used,
            degraded=degraded,
            generation=snapshot.generation,
        )

    def _vector_scores(
        self,
        snapshot: "IndexSnapshot",
        candidates: list[Document],
        query_vector: list[float],
    ) -> dict[str, float]:
        if snapshot.dimension is not None and len(query_vector) != snapshot.dimension:
            raise ProviderError(
                ProviderErrorKind.INVALID_INPUT,
                f"query dimension {len(query_vector)} does not match index dimension {snapshot.dimension}",
            )

        embedded = [doc.id for doc in candidates if snapshot.has_embedding(doc.id)]
        if not embedded:
            return {}

        rows = np.fromiter((snapshot.rows[doc_id] for doc_id in embedded), dtype=np.intp)
        scores = cosine_scores(snapshot.vectors[rows], query_vector)
        return {doc_id: float(score) for doc_id, score in zip(embedded, scores)}

    @staticmethod
    def _passes_filters(
        doc: Document,
        content_categories: list[str] | None,
        filters: SearchFilters,
    ) -> bool:
        if content_categories is not None:
            if doc.content_category.lower() not in {c.lower() for c in content_categories}:
                return False

        if filters.file_kinds:
            if doc.file_kind.lower() not in {k.lower() for k in filters.file_kinds}:
                return False

        if date_range := filters.date_range:
            if doc.created_at is None:
                return False
            if date_range.start and doc.created_at < date_range.start:
                return False
            if date_range.end and doc.created_at > date_range.end:
                return False

        if size_range := filters.size_range:
            if size_range.min_bytes is not None and doc.size_bytes < size_range.min_bytes:
                return False
            if size_range.max_bytes is not None and doc.size_bytes > size_range.max_bytes:
                return False

        if filters.source_prefix and not doc.source_locator.startswith(filters.source_prefix):
            return False

        return True

    @staticmethod
    def _rank(scored: list[HybridResult], snapshot: "IndexSnapshot") -> list[HybridResult]:
        """Score descending, then most recently modified, then id ascending."""

        def sort_key(result: HybridResult):
            modified = snapshot.documents[result.document_id].modified_at
            recency = -modified.timestamp() if modified else math.inf
            return (-result.final_score, recency, result.document_id)

        return sorted(scored, key=sort_key)

    def _to_result(self, doc: Document, scored: HybridResult, query_terms: list[str]) -> SearchResult:
        return SearchResult(
            document_id=doc.id,
            score=scored.final_score,
            keyword_score=scored.breakdown.keyword_score,
            vector_score=scored.breakdown.vector_score,
            title=doc.title,
            summary=doc.summary,
            snippet=self._highlight_snippet(doc.body, query_terms),
            content_category=doc.content_category,
            file_kind=doc.file_kind,
            source_locator=doc.source_locator,
            author=doc.author,
            language=doc.language,
            created_at=doc.created_at,
            modified_at=doc.modified_at,
            indexed_at=doc.indexed_at,
            size_bytes=doc.size_bytes,
            key_phrases=list(doc.key_phrases),
        )

    def _highlight_snippet(
        self, content: str, query_terms: list[str], max_length: int = 300
    ) -> str:
        """Create a snippet with highlighted query terms."""
        terms = set(query_terms)

        # Find best window containing query terms
        words = content.split()
        best_start = 0
        window_size = 50  # words

        if terms:
            hits = [not terms.isdisjoint(tokenize(w)) for w in words]
            score = best_score = sum(hits[:window_size])
            # Slide the window one word at a time, keeping a running hit count
            for i in range(1, len(words)):
                score -= hits[i - 1]
                if i + window_size - 1 < len(words):
                    score += hits[i + window_size - 1]
                if score > best_score:
                    best_score = score
                    best_start = i

        snippet = " ".join(words[best_start : best_start + window_size])

        if len(snippet) > max_length:
            snippet = snippet[:max_length] + "..."

        if best_start > 0:
            snippet = "..." + snippet
        if best_start + window_size < len(words):
            snippet = snippet + "..."

        if terms:
            alternatives = "|".join(re.escape(t) for t in sorted(terms, key=len, reverse=True))
            pattern = re.compile(rf"\b({alternatives})\b", re.IGNORECASE)
            snippet = pattern.sub(r"<mark>\1</mark>", snippet)

        return snippet


def _clamp(value: float) -> float:
    return max(-1.0, min(1.0, value))
