"""Mutation path: validate, embed, merge and persist documents."""

import asyncio
from typing import Any, Iterable

import structlog
from pydantic import ValidationError as PydanticValidationError

from rag_search.embedding.generator import EmbeddingGenerator
from rag_search.errors import ValidationError
from rag_search.indexing.refresher import SnapshotRefresher
from rag_search.models.document import Document, Embedding, utcnow
from rag_search.models.search import UpsertError, UpsertResult
from rag_search.observability import INDEXED_DOCUMENTS
from rag_search.storage.repository import DocumentStore

logger = structlog.get_logger()


class IndexWriter:
    """
    Accepts new and updated documents and commits them to the store.

    Flow:
    1. Validate each document individually (bad items never abort the batch)
    2. Compute missing embeddings via the generator
    3. Under the mutation lock: load, merge by id (new wins), persist with
       the next generation
    4. Signal the refresher; the write path never builds snapshots itself

    The mutation lock is held only around load-merge-persist, so two
    upserts embed concurrently but never interleave their persists.
    """

    def __init__(
        self,
        store: DocumentStore,
        generator: EmbeddingGenerator,
        refresher: SnapshotRefresher | None = None,
    ):
        self.store = store
        self.generator = generator
        self.refresher = refresher
        self._lock = asyncio.Lock()

    async def upsert(self, documents: Iterable[Document | dict[str, Any]]) -> UpsertResult:
        """
        Index a batch of documents.

        Args:
            documents: Documents (or plain dicts) to add or replace by id

        Returns:
            UpsertResult with the accepted count and per-document errors

        Raises:
            PersistenceError: If the store cannot be read or written
        """
        indexed_at = utcnow()
        accepted: dict[str, Document] = {}
        errors: list[UpsertError] = []

        for item in documents:
            try:
                doc = self._validate(item)
            except ValidationError as e:
                errors.append(UpsertError(id=e.document_id or "", reason=e.reason))
                INDEXED_DOCUMENTS.labels(status="rejected").inc()
                continue
            # Last occurrence of an id inside one batch wins
            accepted[doc.id] = doc.model_copy(update={"indexed_at": indexed_at})

        if not accepted:
            logger.info("upsert_nothing_accepted", rejected=len(errors))
            return UpsertResult(accepted=0, errors=errors)

        if any(not self.generator.has_vector(doc.content_hash) for doc in accepted.values()):
            await self._prime_unchanged(accepted)
        embeddings = await self.generator.ensure_embeddings(list(accepted.values()))

        async with self._lock:
            state = await self.store.load()
            merged_docs = dict(state.documents)
            merged_embeddings = dict(state.embeddings)

            for doc_id, doc in accepted.items():
                merged_docs[doc_id] = doc
                embedding = embeddings.get(doc_id)
                existing = state.embeddings.get(doc_id)
                if embedding is None and existing is not None and existing.content_hash == doc.content_hash:
                    embeddings[doc_id] = embedding = existing
                if embedding is None:
                    # Old vector belongs to old text; serve keyword-only until backfilled
                    merged_embeddings.pop(doc_id, None)
                else:
                    merged_embeddings[doc_id] = embedding

            generation = state.generation + 1
            await self.store.persist(
                list(merged_docs.values()),
                list(merged_embeddings.values()),
                generation,
            )
            self.generator.retain(e.content_hash for e in merged_embeddings.values())

        without_vector = sum(1 for doc_id in accepted if embeddings.get(doc_id) is None)
        INDEXED_DOCUMENTS.labels(status="embedded").inc(len(accepted) - without_vector)
        INDEXED_DOCUMENTS.labels(status="keyword_only").inc(without_vector)
        logger.info(
            "upsert_complete",
            accepted=len(accepted),
            rejected=len(errors),
            without_embedding=without_vector,
            generation=generation,
        )

        self._signal_refresh()
        return UpsertResult(accepted=len(accepted), errors=errors, generation=generation)

    async def delete(self, document_ids: Iterable[str]) -> int:
        """
        Remove documents (and their embeddings) by id.

        Returns:
            Number of documents actually removed
        """
        ids = set(document_ids)
        async with self._lock:
            state = await self.store.load()
            removed = ids & state.documents.keys()
            if not removed:
                logger.warning("delete_nothing_found", ids=sorted(ids))
                return 0

            documents = [d for doc_id, d in state.documents.items() if doc_id not in removed]
            embeddings = [e for doc_id, e in state.embeddings.items() if doc_id not in removed]
            await self.store.persist(documents, embeddings, state.generation + 1)
            self.generator.retain(e.content_hash for e in embeddings)

        logger.info("documents_deleted", removed=len(removed))
        self._signal_refresh()
        return len(removed)

    async def backfill(self) -> int:
        """
        Compute embeddings for stored documents that have none.

        Returns:
            Number of documents that gained an embedding
        """
        state = await self.store.load()
        missing = [doc for doc_id, doc in state.documents.items() if doc_id not in state.embeddings]
        if not missing:
            return 0

        computed = await self.generator.ensure_embeddings(missing)
        produced = {doc_id: e for doc_id, e in computed.items() if e is not None}
        if not produced:
            logger.info("backfill_no_progress", missing=len(missing))
            return 0

        async with self._lock:
            state = await self.store.load()
            embeddings = dict(state.embeddings)
            added = 0
            for doc_id, embedding in produced.items():
                doc = state.documents.get(doc_id)
                # Skip documents changed or removed while we were embedding
                if doc is None or doc_id in embeddings or doc.content_hash != embedding.content_hash:
                    continue
                embeddings[doc_id] = embedding
                added += 1

            if added:
                await self.store.persist(
                    list(state.documents.values()),
                    list(embeddings.values()),
                    state.generation + 1,
                )
            self.generator.retain(e.content_hash for e in embeddings.values())

        logger.info("backfill_complete", missing=len(missing), added=added)
        return added

    async def rebuild(self) -> int:
        """
        Forget every cached vector and re-embed the whole corpus.

        Returns:
            The generation persisted by the rebuild
        """
        async with self._lock:
            self.generator.clear()
            state = await self.store.load()
            documents = list(state.documents.values())

            embeddings: list[Embedding] = []
            if documents:
                computed = await self.generator.ensure_embeddings(documents)
                embeddings = [e for e in computed.values() if e is not None]

            generation = state.generation + 1
            await self.store.persist(documents, embeddings, generation)

        logger.warning(
            "index_rebuilt",
            documents=len(documents),
            embeddings=len(embeddings),
            generation=generation,
        )
        return generation

    async def _prime_unchanged(self, accepted: dict[str, Document]):
        """Seed the generator with stored vectors whose text is unchanged."""
        state = await self.store.load()
        reusable = [
            embedding
            for doc_id, embedding in state.embeddings.items()
            if doc_id in accepted and accepted[doc_id].content_hash == embedding.content_hash
        ]
        if reusable:
            self.generator.prime(reusable)

    def _validate(self, item: Document | dict[str, Any]) -> Document:
        if isinstance(item, Document):
            doc = item
        else:
            raw_id = item.get("id") if isinstance(item, dict) else None
            try:
                doc = Document.model_validate(item)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"malformed document: {e.error_count()} invalid field(s)",
                    document_id=str(raw_id or ""),
                ) from e

        if not doc.id or not doc.id.strip():
            raise ValidationError("id must not be empty", document_id=doc.id)
        if not doc.body or not doc.body.strip():
            raise ValidationError("body text must not be empty", document_id=doc.id)
        return doc

    def _signal_refresh(self):
        if self.refresher is not None and self.refresher.is_running:
            self.refresher.trigger().add_done_callback(_discard_outcome)


def _discard_outcome(future):
    # Load failures are already recorded on the refresher
    if not future.cancelled():
        future.exception()
