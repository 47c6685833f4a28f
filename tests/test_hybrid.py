"""Tests for hybrid score combination."""

from __future__ import annotations

import itertools

import pytest

from rag_search.retrieval.hybrid import HybridScorer


def _by_id(results):
    return {r.document_id: r for r in results}


def test_agreement_gets_weighted_sum_plus_bonus() -> None:
    results = _by_id(HybridScorer().combine({"a": 0.5}, {"a": 0.5}))

    assert results["a"].final_score == pytest.approx(0.6 * 0.5 + 0.4 * 0.5 + 0.1)
    assert results["a"].breakdown.keyword_score == 0.5
    assert results["a"].breakdown.vector_score == 0.5


def test_agreement_score_is_capped_at_one() -> None:
    results = _by_id(HybridScorer().combine({"a": 1.0}, {"a": 1.0}))

    assert results["a"].final_score == 1.0


def test_single_signal_documents_keep_weighted_score_without_bonus() -> None:
    results = _by_id(HybridScorer().combine({"k": 1.0}, {"v": 0.5}))

    assert results["k"].final_score == pytest.approx(0.6)
    assert results["v"].final_score == pytest.approx(0.2)
    assert results["k"].breakdown.vector_score == 0.0


def test_hybrid_score_bounds_over_grid() -> None:
    scorer = HybridScorer()
    keyword_values = [0.05, 0.25, 0.5, 0.75, 1.0]
    vector_values = [-1.0, -0.3, 0.0, 0.3, 0.7, 1.0]

    for k, v in itertools.product(keyword_values, vector_values):
        (result,) = scorer.combine({"a": k}, {"a": v})
        assert result.final_score <= 1.0
        assert result.final_score >= min(k, v)


def test_custom_weights_are_applied() -> None:
    scorer = HybridScorer(keyword_weight=0.5, vector_weight=0.5, agreement_bonus=0.0)

    (result,) = scorer.combine({"a": 0.4}, {"a": 0.8})

    assert result.final_score == pytest.approx(0.6)


def test_keyword_only_and_vector_only_report_other_signal() -> None:
    scorer = HybridScorer()

    (kw,) = scorer.keyword_only({"a": 0.5}, {"a": 0.9})
    (vec,) = scorer.vector_only({"a": 0.9}, {"a": 0.5})

    assert kw.final_score == 0.5 and kw.breakdown.vector_score == 0.9
    assert vec.final_score == 0.9 and vec.breakdown.keyword_score == 0.5
