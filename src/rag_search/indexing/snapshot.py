"""Immutable in-memory view of the corpus used to serve queries."""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping

import numpy as np

from rag_search.models.document import Document, utcnow
from rag_search.retrieval.keyword import term_set
from rag_search.retrieval.vector import as_unit_rows
from rag_search.storage.repository import StoreState

_EMPTY: Mapping = MappingProxyType({})


@dataclass(frozen=True, eq=False)
class IndexSnapshot:
    """
    Point-in-time copy of all documents and embeddings.

    Built once by the refresher and never mutated afterwards: mappings are
    read-only proxies and the vector matrix is flagged non-writeable.
    Queries hold a reference for their whole lifetime, so a refresh that
    publishes a newer snapshot never affects a query in progress.
    """

    generation: int = 0
    loaded_at: datetime | None = None
    documents: Mapping[str, Document] = field(default_factory=lambda: _EMPTY)
    terms: Mapping[str, frozenset[str]] = field(default_factory=lambda: _EMPTY)
    rows: Mapping[str, int] = field(default_factory=lambda: _EMPTY)
    vectors: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), dtype=np.float32))
    dimension: int | None = None

    @classmethod
    def build(cls, state: StoreState, loaded_at: datetime | None = None) -> "IndexSnapshot":
        """Materialize a snapshot from a loaded store state."""
        documents = dict(sorted(state.documents.items()))
        terms = {doc_id: term_set(doc.searchable_text) for doc_id, doc in documents.items()}

        embedded = [doc_id for doc_id in documents if doc_id in state.embeddings]
        dimension = state.dimension
        vectors = as_unit_rows(
            [state.embeddings[doc_id].vector for doc_id in embedded],
            dimension or 0,
        )
        vectors.setflags(write=False)

        return cls(
            generation=state.generation,
            loaded_at=loaded_at or utcnow(),
            documents=MappingProxyType(documents),
            terms=MappingProxyType(terms),
            rows=MappingProxyType({doc_id: i for i, doc_id in enumerate(embedded)}),
            vectors=vectors,
            dimension=dimension,
        )

    @classmethod
    def empty(cls) -> "IndexSnapshot":
        return cls()

    @property
    def document_count(self) -> int:
        return len(self.documents)

    @property
    def embedding_count(self) -> int:
        return len(self.rows)

    def has_embedding(self, doc_id: str) -> bool:
        return doc_id in self.rows
