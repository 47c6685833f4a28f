"""Tests for query execution against a fixed snapshot."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from rag_search.embedding import EmbeddingGenerator, HttpEmbeddingProvider
from rag_search.errors import ProviderError, ProviderErrorKind
from rag_search.indexing.snapshot import IndexSnapshot
from rag_search.models.document import Document, Embedding
from rag_search.models.search import (
    DateRange,
    FileSizeRange,
    SearchFilters,
    SearchMode,
    SearchRequest,
)
from rag_search.retrieval.executor import SearchExecutor
from rag_search.retrieval.keyword import term_set, tokenize
from rag_search.storage.repository import StoreState

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _snapshot(docs: list[Document], vectors: dict[str, list[float]] | None = None) -> IndexSnapshot:
    vectors = vectors or {}
    state = StoreState(
        documents={d.id: d for d in docs},
        embeddings={
            d.id: Embedding(document_id=d.id, content_hash=d.content_hash, vector=vectors[d.id])
            for d in docs
            if d.id in vectors
        },
        generation=3,
    )
    return IndexSnapshot.build(state)


def _embedder(vector: list[float] | None = None, error: ProviderError | None = None):
    calls: list[str] = []

    async def embed_query(query: str) -> list[float]:
        calls.append(query)
        if error is not None:
            raise error
        return vector

    embed_query.calls = calls
    return embed_query


def _run(executor: SearchExecutor, snapshot: IndexSnapshot, **request):
    return asyncio.run(executor.execute(snapshot, SearchRequest(**request)))


@pytest.fixture
def corpus() -> IndexSnapshot:
    return _snapshot(
        [
            Document(id="a", body="azure functions deployment guide"),
            Document(id="b", body="cooking recipes for bread"),
            Document(id="c", body="serverless functions on other clouds"),
        ],
        {"a": [1.0, 0.0, 0.0], "b": [0.0, 1.0, 0.0], "c": [0.6, 0.8, 0.0]},
    )


def test_keyword_mode_returns_only_overlapping_documents(corpus: IndexSnapshot) -> None:
    executor = SearchExecutor(_embedder([1.0, 0.0, 0.0]))

    azure = _run(executor, corpus, query="azure functions", mode=SearchMode.KEYWORD)
    bread = _run(executor, corpus, query="bread", mode=SearchMode.KEYWORD)

    assert [r.document_id for r in azure.results] == ["a", "c"]
    assert azure.results[0].score == 1.0
    assert [r.document_id for r in bread.results] == ["b"]
    assert bread.total_results == 1


def test_keyword_results_always_contain_a_query_term(corpus: IndexSnapshot) -> None:
    executor = SearchExecutor(_embedder([1.0, 0.0, 0.0]))

    for query in ["azure", "guide bread", "clouds functions", "nothing matches here"]:
        response = _run(executor, corpus, query=query, mode=SearchMode.KEYWORD)
        query_terms = set(tokenize(query))
        for result in response.results:
            assert query_terms & term_set(corpus.documents[result.document_id].searchable_text)


def test_keyword_mode_never_calls_the_provider(corpus: IndexSnapshot) -> None:
    embed = _embedder([1.0, 0.0, 0.0])

    _run(SearchExecutor(embed), corpus, query="azure", mode=SearchMode.KEYWORD)

    assert embed.calls == []


def test_vector_mode_scores_every_embedded_document(corpus: IndexSnapshot) -> None:
    executor = SearchExecutor(_embedder([1.0, 0.0, 0.0]))

    response = _run(executor, corpus, query="anything", mode=SearchMode.VECTOR)

    scores = {r.document_id: r.score for r in response.results}
    assert scores == pytest.approx({"a": 1.0, "b": 0.0, "c": 0.6}, abs=1e-6)
    assert response.results[0].document_id == "a"


def test_vector_mode_excludes_documents_without_embeddings() -> None:
    snapshot = _snapshot(
        [Document(id="a", body="alpha"), Document(id="b", body="beta")],
        {"a": [1.0, 0.0]},
    )

    response = _run(SearchExecutor(_embedder([1.0, 0.0])), snapshot, query="beta", mode=SearchMode.VECTOR)

    assert [r.document_id for r in response.results] == ["a"]


def test_hybrid_rewards_agreement(corpus: IndexSnapshot) -> None:
    executor = SearchExecutor(_embedder([1.0, 0.0, 0.0]))

    response = _run(executor, corpus, query="azure functions", mode=SearchMode.HYBRID)
    by_id = {r.document_id: r for r in response.results}

    assert by_id["a"].score == pytest.approx(1.0)  # 0.6 + 0.4 + 0.1, capped
    assert by_id["c"].score == pytest.approx(0.6 * 0.5 + 0.4 * 0.6 + 0.1, abs=1e-6)
    assert by_id["b"].score == pytest.approx(0.0, abs=1e-6)  # vector-only, no bonus
    assert response.mode_used is SearchMode.HYBRID
    assert response.degraded is False


def test_semantic_mode_boosts_and_clamps_vector_score() -> None:
    snapshot = _snapshot(
        [Document(id="a", body="alpha"), Document(id="b", body="beta")],
        {"a": [0.5, 0.8660254], "b": [0.9, 0.43588989]},
    )
    executor = SearchExecutor(_embedder([1.0, 0.0]), semantic_boost=1.2)

    response = _run(executor, snapshot, query="q", mode=SearchMode.SEMANTIC)
    scores = {r.document_id: r.score for r in response.results}

    assert scores["a"] == pytest.approx(0.6, abs=1e-5)
    assert scores["b"] == 1.0
    assert response.mode_used is SearchMode.SEMANTIC


@pytest.mark.parametrize("mode", [SearchMode.VECTOR, SearchMode.HYBRID, SearchMode.SEMANTIC])
def test_provider_failure_degrades_to_keyword(corpus: IndexSnapshot, mode: SearchMode) -> None:
    executor = SearchExecutor(
        _embedder(error=ProviderError(ProviderErrorKind.UNAVAILABLE, "down"))
    )

    response = _run(executor, corpus, query="azure functions", mode=mode)

    assert response.degraded is True
    assert response.mode_used is SearchMode.KEYWORD
    assert response.results[0].document_id == "a"
    assert all(r.vector_score == 0.0 for r in response.results)


def test_query_dimension_mismatch_degrades(corpus: IndexSnapshot) -> None:
    executor = SearchExecutor(_embedder([1.0, 0.0]))

    response = _run(executor, corpus, query="azure", mode=SearchMode.VECTOR)

    assert response.degraded is True
    assert [r.document_id for r in response.results] == ["a"]


def test_filters_apply_before_scoring() -> None:
    docs = [
        Document(
            id="pdf-old",
            body="quarterly report",
            content_category="text",
            file_kind="pdf",
            source_locator="s3://reports/2023/q1.pdf",
            created_at=T0 - timedelta(days=400),
            size_bytes=10_000,
        ),
        Document(
            id="pdf-new",
            body="quarterly report",
            content_category="text",
            file_kind="PDF",
            source_locator="s3://reports/2024/q1.pdf",
            created_at=T0 + timedelta(days=10),
            size_bytes=20_000,
        ),
        Document(
            id="png",
            body="quarterly report chart",
            content_category="image",
            file_kind="png",
            source_locator="s3://reports/2024/chart.png",
            created_at=T0 + timedelta(days=10),
            size_bytes=500,
        ),
    ]
    snapshot = _snapshot(docs)
    executor = SearchExecutor(_embedder([1.0]))

    def ids(**request) -> list[str]:
        response = _run(executor, snapshot, query="quarterly report", mode=SearchMode.KEYWORD, **request)
        return sorted(r.document_id for r in response.results)

    assert ids(content_categories=["Image"]) == ["png"]
    assert ids(filters=SearchFilters(file_kinds=["pdf"])) == ["pdf-new", "pdf-old"]
    assert ids(filters=SearchFilters(date_range=DateRange(start=T0))) == ["pdf-new", "png"]
    assert ids(filters=SearchFilters(size_range=FileSizeRange(min_bytes=1_000, max_bytes=15_000))) == ["pdf-old"]
    assert ids(filters=SearchFilters(source_prefix="s3://reports/2024/")) == ["pdf-new", "png"]
    assert ids(content_categories=[]) == []


def test_ties_break_by_recency_then_id() -> None:
    docs = [
        Document(id="b-undated", body="shared words"),
        Document(id="a-undated", body="shared words"),
        Document(id="old", body="shared words", modified_at=T0),
        Document(id="new", body="shared words", modified_at=T0 + timedelta(days=1)),
    ]
    executor = SearchExecutor(_embedder([1.0]))

    response = _run(executor, _snapshot(docs), query="shared", mode=SearchMode.KEYWORD)

    assert [r.document_id for r in response.results] == ["new", "old", "a-undated", "b-undated"]


def test_max_results_truncates_but_total_counts_all() -> None:
    docs = [Document(id=f"d{i:02d}", body="common term") for i in range(30)]
    executor = SearchExecutor(_embedder([1.0]), default_max_results=10, max_results_limit=20)
    snapshot = _snapshot(docs)

    default = _run(executor, snapshot, query="common", mode=SearchMode.KEYWORD)
    limited = _run(executor, snapshot, query="common", mode=SearchMode.KEYWORD, max_results=3)
    capped = _run(executor, snapshot, query="common", mode=SearchMode.KEYWORD, max_results=100)

    assert len(default.results) == 10
    assert len(limited.results) == 3
    assert len(capped.results) == 20
    assert default.total_results == limited.total_results == 30


def test_results_carry_document_fields_and_highlighted_snippet(corpus: IndexSnapshot) -> None:
    executor = SearchExecutor(_embedder([1.0, 0.0, 0.0]))

    response = _run(executor, corpus, query="Azure guide", mode=SearchMode.KEYWORD)
    top = response.results[0]

    assert top.document_id == "a"
    assert "<mark>azure</mark>" in top.snippet
    assert "<mark>guide</mark>" in top.snippet
    assert response.generation == 3
    assert response.query == "Azure guide"


@pytest.mark.parametrize("mode", [SearchMode.VECTOR, SearchMode.HYBRID, SearchMode.SEMANTIC])
def test_undecodable_provider_response_degrades_to_keyword(corpus: IndexSnapshot, mode: SearchMode) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.DecodingError("bad gzip", request=request)

    provider = HttpEmbeddingProvider(
        base_url="https://embeddings.test/v1",
        model="test-model",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    executor = SearchExecutor(EmbeddingGenerator(provider).embed_query)

    response = _run(executor, corpus, query="azure functions", mode=mode)

    assert response.degraded is True
    assert response.mode_used is SearchMode.KEYWORD
    assert response.results[0].document_id == "a"


# ---------------------------------------------------------------------------
# Snippets
# ---------------------------------------------------------------------------


def test_snippet_finds_densest_window_in_a_large_body() -> None:
    filler = ["x"] * 60_000
    filler[45_000:45_003] = ["azure", "functions", "azure"]
    doc = Document(id="big", body=" ".join(filler))
    executor = SearchExecutor(_embedder([1.0]))

    started = time.perf_counter()
    response = _run(executor, _snapshot([doc]), query="azure", mode=SearchMode.KEYWORD)
    elapsed = time.perf_counter() - started

    snippet = response.results[0].snippet
    assert snippet.startswith("...")
    assert snippet.endswith("...")
    assert snippet.count("<mark>azure</mark>") == 2
    assert elapsed < 2.0


def test_snippet_without_matches_starts_at_the_beginning() -> None:
    executor = SearchExecutor(_embedder())
    body = " ".join(f"word{i}" for i in range(80))

    snippet = executor._highlight_snippet(body, ["absent"])

    assert snippet.startswith("word0 ")
    assert "<mark>" not in snippet
