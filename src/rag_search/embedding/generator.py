"""Embedding generation with content-hash caching and bounded concurrency."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from rag_search.config import Settings
from rag_search.embedding.cache import QueryEmbeddingCache
from rag_search.embedding.provider import EmbeddingProvider
from rag_search.errors import CorruptionError, ProviderError, ProviderErrorKind
from rag_search.models.document import Document, Embedding
from rag_search.observability import (
    EMBEDDING_CACHE_HITS,
    EMBEDDING_CACHE_MISSES,
    PROVIDER_CALLS,
)

logger = structlog.get_logger()


class OutcomeStatus(str, Enum):
    OK = "ok"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class EmbedOutcome:
    """Result of one provider attempt: a vector, or a classified failure."""

    status: OutcomeStatus
    vector: list[float] | None = None
    error: ProviderError | None = None

    @classmethod
    def ok(cls, vector: list[float]) -> "EmbedOutcome":
        return cls(OutcomeStatus.OK, vector=vector)

    @classmethod
    def failed(cls, error: ProviderError) -> "EmbedOutcome":
        status = OutcomeStatus.RETRYABLE if error.retryable else OutcomeStatus.FATAL
        return cls(status, error=error)


class EmbeddingGenerator:
    """
    Computes embeddings for documents whose text has not been embedded yet.

    Vectors are cached by content hash, so identical text across documents
    or across re-indexing reuses one vector. Provider calls go through a
    semaphore (excess calls wait for a slot) and each call is bounded by a
    timeout. Retryable failures are retried with exponential backoff; a
    document that still has no vector afterwards maps to None and is
    indexed for keyword search only.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        concurrency: int = 5,
        timeout: float = 30.0,
        query_timeout: float = 5.0,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        query_cache: QueryEmbeddingCache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.concurrency = concurrency
        self.timeout = timeout
        self.query_timeout = query_timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.query_cache = query_cache or QueryEmbeddingCache(max_size=0)
        self._sleep = sleep

        self._semaphore = asyncio.Semaphore(concurrency)
        self._vectors: dict[str, list[float]] = {}
        self._inflight: dict[str, asyncio.Future] = {}
        self.dimension: int | None = None

    @classmethod
    def from_settings(cls, provider: EmbeddingProvider, settings: Settings) -> "EmbeddingGenerator":
        return cls(
            provider,
            concurrency=settings.embedding_concurrency,
            timeout=settings.embedding_timeout_seconds,
            query_timeout=settings.query_timeout_seconds,
            max_attempts=settings.embedding_max_attempts,
            backoff_base=settings.embedding_backoff_base_seconds,
            backoff_max=settings.embedding_backoff_max_seconds,
            query_cache=QueryEmbeddingCache(
                max_size=settings.query_cache_max_size,
                ttl_seconds=settings.query_cache_ttl_seconds,
            ),
        )

    def prime(self, embeddings: Iterable[Embedding]):
        """Register already-stored vectors so their content is never re-embedded."""
        for embedding in embeddings:
            if self.dimension is None:
                self.dimension = embedding.dimension
            if embedding.dimension == self.dimension:
                self._vectors[embedding.content_hash] = embedding.vector

    def clear(self):
        """Forget every cached vector (e.g. after an embedding model upgrade)."""
        self._vectors.clear()
        self.query_cache.invalidate()
        self.dimension = None
        logger.info("embedding_cache_cleared")

    def retain(self, content_hashes: Iterable[str]):
        """Drop cached vectors whose content no longer backs any stored embedding."""
        keep = set(content_hashes)
        stale = [h for h in self._vectors if h not in keep]
        for content_hash in stale:
            del self._vectors[content_hash]
        if stale:
            logger.debug("embedding_cache_pruned", removed=len(stale), kept=len(self._vectors))

    def has_vector(self, content_hash: str) -> bool:
        return content_hash in self._vectors

    @property
    def cached_count(self) -> int:
        return len(self._vectors)

    async def ensure_embeddings(
        self, documents: list[Document]
    ) -> dict[str, Embedding | None]:
        """
        Return an embedding (or None on failure) for every document.

        Args:
            documents: Documents to embed; only unseen content hashes hit the provider

        Returns:
            Mapping of document id to Embedding, or None if none could be produced
        """
        hashes = {doc.id: doc.content_hash for doc in documents}

        missing: dict[str, str] = {}
        for doc in documents:
            content_hash = hashes[doc.id]
            if content_hash in self._vectors:
                EMBEDDING_CACHE_HITS.labels(kind="document").inc()
            elif content_hash not in missing:
                EMBEDDING_CACHE_MISSES.labels(kind="document").inc()
                missing[content_hash] = doc.body

        if missing:
            logger.info("embedding_batch_start", documents=len(documents), unique_texts=len(missing))
            futures = [self._embed_shared(h, text) for h, text in missing.items()]
            outcomes = await asyncio.gather(*futures)
            for content_hash, outcome in zip(missing, outcomes):
                self._accept(content_hash, outcome)

        results: dict[str, Embedding | None] = {}
        for doc in documents:
            content_hash = hashes[doc.id]
            vector = self._vectors.get(content_hash)
            results[doc.id] = (
                Embedding(document_id=doc.id, content_hash=content_hash, vector=vector)
                if vector is not None
                else None
            )
        return results

    async def embed_query(self, query: str) -> list[float]:
        """
        Embed a query for vector scoring (single attempt, query timeout).

        Raises:
            ProviderError: If the provider fails or times out
        """
        cached = self.query_cache.get(query)
        if cached is not None:
            EMBEDDING_CACHE_HITS.labels(kind="query").inc()
            return cached
        EMBEDDING_CACHE_MISSES.labels(kind="query").inc()

        outcome = await self._attempt(query, self.query_timeout)
        if outcome.status is not OutcomeStatus.OK:
            raise outcome.error
        if self.dimension is not None and len(outcome.vector) != self.dimension:
            raise ProviderError(
                ProviderErrorKind.INVALID_INPUT,
                f"query embedding has dimension {len(outcome.vector)}, index uses {self.dimension}",
            )
        self.query_cache.set(query, outcome.vector)
        return outcome.vector

    def _embed_shared(self, content_hash: str, text: str) -> asyncio.Future:
        """Join an in-flight computation for the same content, or start one."""
        future = self._inflight.get(content_hash)
        if future is None:
            future = asyncio.ensure_future(self._embed_with_retry(text))
            self._inflight[content_hash] = future
            future.add_done_callback(lambda _: self._inflight.pop(content_hash, None))
        return future

    def _accept(self, content_hash: str, outcome: EmbedOutcome):
        if outcome.status is not OutcomeStatus.OK:
            logger.warning(
                "embedding_failed",
                content_hash=content_hash,
                error=str(outcome.error),
                status=outcome.status.value,
            )
            return

        if self.dimension is None:
            self.dimension = len(outcome.vector)
        if len(outcome.vector) != self.dimension:
            error = CorruptionError(
                f"provider returned dimension {len(outcome.vector)}, index uses {self.dimension}"
            )
            logger.error("embedding_dimension_mismatch", content_hash=content_hash, error=str(error))
            return
        self._vectors[content_hash] = outcome.vector

    async def _embed_with_retry(self, text: str) -> EmbedOutcome:
        retrying = AsyncRetrying(
            retry=retry_if_result(lambda outcome: outcome.status is OutcomeStatus.RETRYABLE),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            sleep=self._sleep,
            before_sleep=_log_retry,
            # Out of attempts: hand back the last failed outcome instead of RetryError
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return await retrying(self._attempt, text, self.timeout)

    async def _attempt(self, text: str, timeout: float) -> EmbedOutcome:
        async with self._semaphore:
            try:
                vector = await asyncio.wait_for(
                    self.provider.embed(text, timeout=timeout), timeout
                )
            except ProviderError as e:
                PROVIDER_CALLS.labels(outcome=e.kind.value).inc()
                return EmbedOutcome.failed(e)
            except asyncio.TimeoutError:
                PROVIDER_CALLS.labels(outcome=ProviderErrorKind.TIMEOUT.value).inc()
                return EmbedOutcome.failed(
                    ProviderError(ProviderErrorKind.TIMEOUT, f"no response within {timeout}s")
                )
            except Exception as e:
                logger.warning("provider_unexpected_error", error_type=type(e).__name__, error=str(e))
                PROVIDER_CALLS.labels(outcome=ProviderErrorKind.UNAVAILABLE.value).inc()
                return EmbedOutcome.failed(
                    ProviderError(ProviderErrorKind.UNAVAILABLE, f"{type(e).__name__}: {e}")
                )
        PROVIDER_CALLS.labels(outcome="ok").inc()
        return EmbedOutcome.ok(vector)


def _log_retry(retry_state: RetryCallState):
    outcome = retry_state.outcome.result()
    logger.info(
        "embedding_retry",
        attempt=retry_state.attempt_number,
        delay=retry_state.next_action.sleep,
        error=str(outcome.error),
    )
