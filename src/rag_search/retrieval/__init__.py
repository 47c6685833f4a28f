"""Retrieval package."""

from rag_search.retrieval.executor import SearchExecutor
from rag_search.retrieval.hybrid import HybridResult, HybridScorer
from rag_search.retrieval.keyword import keyword_score, term_set, tokenize
from rag_search.retrieval.vector import as_unit_rows, cosine_scores, cosine_similarity

__all__ = [
    "HybridResult",
    "HybridScorer",
    "SearchExecutor",
    "as_unit_rows",
    "cosine_scores",
    "cosine_similarity",
    "keyword_score",
    "term_set",
    "tokenize",
]
