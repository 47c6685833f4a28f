"""Search service wiring the store, embeddings, snapshots and executor."""

import time
from typing import Any, Iterable

import structlog

from rag_search.config import Settings
from rag_search.embedding import (
    EmbeddingGenerator,
    EmbeddingProvider,
    HttpEmbeddingProvider,
    LocalEmbeddingProvider,
)
from rag_search.errors import PersistenceError, ValidationError
from rag_search.indexing import IndexWriter, SnapshotRefresher
from rag_search.models.document import Document
from rag_search.models.search import (
    IndexStatus,
    SearchRequest,
    SearchResponse,
    UpsertResult,
)
from rag_search.observability import DEGRADED_SEARCHES, SEARCH_LATENCY, SEARCH_REQUESTS
from rag_search.retrieval import HybridScorer, SearchExecutor
from rag_search.storage import DocumentStore, FileObjectStore, SqlObjectStore

logger = structlog.get_logger()


class SearchService:
    """
    High-level search service.

    Orchestrates:
    - Snapshot capture per query and degraded-mode reporting
    - Document upserts, deletes and full rebuilds
    - The background snapshot refresher
    - Index status for operators
    """

    def __init__(
        self,
        settings: Settings,
        store: DocumentStore,
        provider: EmbeddingProvider,
    ):
        self.settings = settings
        self.store = store
        self.provider = provider

        self.generator = EmbeddingGenerator.from_settings(provider, settings)
        self.refresher = SnapshotRefresher(
            store,
            interval_seconds=settings.refresh_interval_minutes * 60,
        )
        self.writer = IndexWriter(store, self.generator, self.refresher)
        self.refresher.on_tick = self.writer.backfill

        self.executor = SearchExecutor(
            self.generator.embed_query,
            scorer=HybridScorer(
                keyword_weight=settings.keyword_weight,
                vector_weight=settings.vector_weight,
                agreement_bonus=settings.agreement_bonus,
            ),
            semantic_boost=settings.semantic_boost,
            default_max_results=settings.default_max_results,
            max_results_limit=settings.max_results_limit,
        )

    async def start(self):
        """Prime the embedding cache from the store and start refreshing."""
        try:
            state = await self.store.load()
            self.generator.prime(state.embeddings.values())
        except PersistenceError as e:
            # The refresher's first load records the same failure in status
            logger.warning("embedding_cache_prime_failed", error=str(e))

        await self.refresher.start()
        logger.info(
            "search_service_started",
            generation=self.refresher.current.generation,
            cached_vectors=self.generator.cached_count,
        )

    async def stop(self):
        await self.refresher.stop()
        await self.provider.aclose()
        if isinstance(self.store.object_store, SqlObjectStore):
            await self.store.object_store.close()
        logger.info("search_service_stopped")

    async def __aenter__(self) -> "SearchService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.stop()

    async def search(self, request: SearchRequest) -> SearchResponse:
        """
        Run a search against the snapshot current at call time.

        Args:
            request: Search request with query, mode, filters and limit

        Returns:
            SearchResponse with ranked results and the mode actually used

        Raises:
            ValidationError: If the query is blank
        """
        if not request.query or not request.query.strip():
            raise ValidationError("query must not be empty")

        start_time = time.perf_counter()
        snapshot = self.refresher.current

        try:
            response = await self.executor.execute(snapshot, request)
        except Exception:
            SEARCH_REQUESTS.labels(status="error", mode=request.mode.value).inc()
            raise

        mode = response.mode_used.value
        SEARCH_REQUESTS.labels(status="success", mode=mode).inc()
        SEARCH_LATENCY.labels(mode=mode).observe(time.perf_counter() - start_time)
        if response.degraded:
            DEGRADED_SEARCHES.labels(requested_mode=request.mode.value).inc()

        logger.info(
            "search_complete",
            query=request.query,
            results_count=len(response.results),
            total_results=response.total_results,
            latency_ms=response.execution_time_ms,
            mode=mode,
            degraded=response.degraded,
            generation=response.generation,
        )
        return response

    async def upsert(self, documents: Iterable[Document | dict[str, Any]]) -> UpsertResult:
        return await self.writer.upsert(documents)

    async def delete(self, document_ids: Iterable[str]) -> int:
        return await self.writer.delete(document_ids)

    def status(self) -> IndexStatus:
        snapshot = self.refresher.current
        return IndexStatus(
            document_count=snapshot.document_count,
            embedding_count=snapshot.embedding_count,
            generation=snapshot.generation,
            dimension=snapshot.dimension,
            refresh_state=self.refresher.state.value,
            last_refresh_at=self.refresher.last_refresh_at,
            last_refresh_error=self.refresher.last_error,
        )

    async def force_refresh(self) -> int:
        """Reload the store now and return the generation being served."""
        return await self.refresher.refresh()

    async def rebuild(self) -> int:
        """Re-embed the whole corpus and serve the result before returning."""
        await self.writer.rebuild()
        return await self.refresher.refresh()


def build_provider(settings: Settings) -> EmbeddingProvider:
    if settings.embedding_provider == "local":
        return LocalEmbeddingProvider(
            settings.local_embedding_model,
            max_input_chars=settings.max_input_chars,
        )
    return HttpEmbeddingProvider(
        base_url=settings.embedding_base_url,
        model=settings.embedding_model,
        api_key=settings.embedding_api_key,
        dimensions=settings.embedding_dimensions,
        max_input_chars=settings.max_input_chars,
    )


def build_service(settings: Settings) -> SearchService:
    """Wire the default store and provider from settings."""
    if settings.store_backend == "sql":
        object_store = SqlObjectStore(settings.database_url, echo=settings.debug)
    else:
        object_store = FileObjectStore(settings.index_dir)

    return SearchService(settings, DocumentStore(object_store), build_provider(settings))
