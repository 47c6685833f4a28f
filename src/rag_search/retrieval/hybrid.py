"""Hybrid scoring combining keyword and vector signals."""

from dataclasses import dataclass

from rag_search.models.search import ScoreBreakdown


@dataclass
class HybridResult:
    """Result from hybrid scoring with score breakdown."""

    document_id: str
    final_score: float
    breakdown: ScoreBreakdown


class HybridScorer:
    """
    Weighted combination of keyword and vector scores.

    Documents found by both signals get ``keyword_weight * k +
    vector_weight * v + agreement_bonus``, capped at 1.0. Documents found
    by only one signal keep that signal's weighted score with no bonus, so
    agreement between the signals outranks either one alone.
    """

    def __init__(
        self,
        keyword_weight: float = 0.6,
        vector_weight: float = 0.4,
        agreement_bonus: float = 0.1,
    ):
        """
        Initialize hybrid scorer.

        Args:
            keyword_weight: Weight for the keyword overlap score
            vector_weight: Weight for the cosine similarity score
            agreement_bonus: Added when both signals qualify a document
        """
        self.keyword_weight = keyword_weight
        self.vector_weight = vector_weight
        self.agreement_bonus = agreement_bonus

    def combine(
        self,
        keyword_scores: dict[str, float],
        vector_scores: dict[str, float],
    ) -> list[HybridResult]:
        """
        Merge the two qualifying sets.

        Args:
            keyword_scores: doc id -> keyword score, only documents with overlap
            vector_scores: doc id -> cosine score, only documents with embeddings

        Returns:
            One HybridResult per document in either set (unordered)
        """
        results = []
        for doc_id in keyword_scores.keys() | vector_scores.keys():
            k = keyword_scores.get(doc_id)
            v = vector_scores.get(doc_id)

            if k is not None and v is not None:
                score = min(
                    1.0,
                    self.keyword_weight * k + self.vector_weight * v + self.agreement_bonus,
                )
            elif k is not None:
                score = self.keyword_weight * k
            else:
                score = self.vector_weight * v

            results.append(HybridResult(
                document_id=doc_id,
                final_score=score,
                breakdown=ScoreBreakdown(
                    keyword_score=k or 0.0,
                    vector_score=v or 0.0,
                    final_score=score,
                ),
            ))
        return results

    def keyword_only(
        self,
        keyword_scores: dict[str, float],
        vector_scores: dict[str, float] | None = None,
    ) -> list[HybridResult]:
        """Rank by keyword score alone; vector scores are reported when known."""
        vector_scores = vector_scores or {}
        return [
            HybridResult(
                document_id=doc_id,
                final_score=k,
                breakdown=ScoreBreakdown(
                    keyword_score=k,
                    vector_score=vector_scores.get(doc_id, 0.0),
                    final_score=k,
                ),
            )
            for doc_id, k in keyword_scores.items()
        ]

    def vector_only(
        self,
        vector_scores: dict[str, float],
        keyword_scores: dict[str, float] | None = None,
    ) -> list[HybridResult]:
        """Rank by vector score alone; keyword scores are reported when known."""
        keyword_scores = keyword_scores or {}
        return [
            HybridResult(
                document_id=doc_id,
                final_score=v,
                breakdown=ScoreBreakdown(
                    keyword_score=keyword_scores.get(doc_id, 0.0),
                    vector_score=v,
                    final_score=v,
                ),
            )
            for doc_id, v in vector_scores.items()
        ]
