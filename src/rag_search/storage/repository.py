"""Durable document/embedding store on top of an object store."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from rag_search.errors import BlobNotFoundError, CorruptionError, PersistenceError
from rag_search.models.document import Document, Embedding, utcnow
from rag_search.storage.object_store import ObjectStore

logger = structlog.get_logger()

FORMAT_VERSION = 1


class DocumentRecord(BaseModel):
    """Serialized form of the full document set."""

    format_version: int = FORMAT_VERSION
    generation: int
    written_at: datetime = Field(default_factory=utcnow)
    documents: list[Document] = Field(default_factory=list)


class EmbeddingRecord(BaseModel):
    """Serialized form of the full embedding set."""

    format_version: int = FORMAT_VERSION
    generation: int
    written_at: datetime = Field(default_factory=utcnow)
    dimension: int | None = None
    embeddings: list[Embedding] = Field(default_factory=list)


@dataclass
class StoreState:
    """Everything the store holds as of one generation."""

    documents: dict[str, Document] = field(default_factory=dict)
    embeddings: dict[str, Embedding] = field(default_factory=dict)
    generation: int = 0

    @property
    def dimension(self) -> int | None:
        for embedding in self.embeddings.values():
            return embedding.dimension
        return None


def consistent_embeddings(
    documents: dict[str, Document],
    embeddings: list[Embedding],
    dimension: int | None = None,
) -> dict[str, Embedding]:
    """
    Keep only embeddings that belong to a current document.

    Drops (and logs) orphans whose document is gone, stale vectors whose
    content hash no longer matches the document body, and vectors whose
    dimension disagrees with the rest of the set.
    """
    if dimension is None and embeddings:
        dimension = Counter(e.dimension for e in embeddings).most_common(1)[0][0]

    kept: dict[str, Embedding] = {}
    for embedding in embeddings:
        doc = documents.get(embedding.document_id)
        if doc is None:
            logger.warning("orphan_embedding_dropped", document_id=embedding.document_id)
            continue
        if embedding.content_hash != doc.content_hash:
            logger.warning("stale_embedding_dropped", document_id=embedding.document_id)
            continue
        if embedding.dimension != dimension:
            error = CorruptionError(
                f"embedding for {embedding.document_id} has dimension "
                f"{embedding.dimension}, expected {dimension}"
            )
            logger.error("corrupt_embedding_dropped", document_id=embedding.document_id, error=str(error))
            continue
        kept[embedding.document_id] = embedding
    return kept


class DocumentStore:
    """
    Persists the document set and the embedding set as two records.

    Writes are full replacements. The embedding record is written first
    and the document record last, so a crash in between leaves the old
    documents authoritative; load() then drops the embeddings that do not
    match them.
    """

    DOCUMENTS_KEY = "documents.json"
    EMBEDDINGS_KEY = "embeddings.json"

    def __init__(self, object_store: ObjectStore):
        self.object_store = object_store

    async def load(self) -> StoreState:
        """
        Load the full document and embedding sets.

        Returns:
            StoreState with reconciled documents and embeddings

        Raises:
            PersistenceError: If a record cannot be read or decoded
        """
        doc_record = await self._read(self.DOCUMENTS_KEY, DocumentRecord)
        if doc_record is None:
            logger.info("store_empty")
            return StoreState()

        emb_record = await self._read(self.EMBEDDINGS_KEY, EmbeddingRecord)
        if emb_record is None:
            emb_record = EmbeddingRecord(generation=doc_record.generation)

        if emb_record.generation != doc_record.generation:
            logger.warning(
                "store_generation_mismatch",
                documents_generation=doc_record.generation,
                embeddings_generation=emb_record.generation,
            )

        documents: dict[str, Document] = {}
        for doc in doc_record.documents:
            if doc.id in documents:
                logger.warning("duplicate_document_dropped", document_id=doc.id)
            documents[doc.id] = doc

        embeddings = consistent_embeddings(documents, emb_record.embeddings, emb_record.dimension)

        logger.info(
            "store_loaded",
            generation=doc_record.generation,
            documents=len(documents),
            embeddings=len(embeddings),
        )
        return StoreState(
            documents=documents,
            embeddings=embeddings,
            generation=doc_record.generation,
        )

    async def persist(
        self,
        documents: list[Document],
        embeddings: list[Embedding],
        generation: int,
    ) -> None:
        """
        Replace both records with the given sets.

        Raises:
            PersistenceError: If either record cannot be written
        """
        doc_map = {doc.id: doc for doc in documents}
        kept = consistent_embeddings(doc_map, embeddings)
        dimension = next((e.dimension for e in kept.values()), None)

        emb_record = EmbeddingRecord(
            generation=generation,
            dimension=dimension,
            embeddings=list(kept.values()),
        )
        doc_record = DocumentRecord(generation=generation, documents=list(doc_map.values()))

        await self.object_store.write_blobs({
            self.EMBEDDINGS_KEY: emb_record.model_dump_json().encode("utf-8"),
            self.DOCUMENTS_KEY: doc_record.model_dump_json().encode("utf-8"),
        })
        logger.info(
            "store_persisted",
            generation=generation,
            documents=len(doc_map),
            embeddings=len(kept),
        )

    async def _read(self, key: str, record_type: type[BaseModel]):
        try:
            raw = await self.object_store.read_blob(key)
        except BlobNotFoundError:
            return None
        try:
            return record_type.model_validate_json(raw)
        except PydanticValidationError as e:
            raise PersistenceError(f"Record {key} is not decodable: {e}") from e
