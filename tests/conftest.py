"""Shared fakes and fixtures for the rag-search test suite."""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path
from typing import Mapping

import pytest

from rag_search.config import Settings
from rag_search.errors import PersistenceError, ProviderError, ProviderErrorKind
from rag_search.models.document import Document
from rag_search.retrieval.keyword import tokenize
from rag_search.storage import DocumentStore, FileObjectStore

DIMENSION = 16


def bag_of_words(text: str, dimension: int = DIMENSION) -> list[float]:
    """Deterministic term-count vector: each token hashes to one slot."""
    vector = [0.0] * dimension
    for token in tokenize(text):
        slot = int(hashlib.sha1(token.encode("utf-8")).hexdigest(), 16) % dimension
        vector[slot] += 1.0
    return vector


class FakeProvider:
    """
    Embedding provider double.

    Records every call, tracks how many calls overlap, and can be told to
    fail (a fixed number of times, or until reset).
    """

    def __init__(self, dimension: int = DIMENSION, delay: float = 0.0) -> None:
        self.dimension = dimension
        self.delay = delay
        self.calls: list[str] = []
        self.fail_with: ProviderErrorKind | None = None
        self.failures_remaining: int | None = None
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    def fail(self, kind: ProviderErrorKind, times: int | None = None) -> None:
        self.fail_with = kind
        self.failures_remaining = times

    def recover(self) -> None:
        self.fail_with = None
        self.failures_remaining = None

    async def embed(self, text: str, *, timeout: float) -> list[float]:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_with is not None:
                if self.failures_remaining is None:
                    raise ProviderError(self.fail_with, "fake failure")
                if self.failures_remaining > 0:
                    self.failures_remaining -= 1
                    raise ProviderError(self.fail_with, "fake failure")
            return bag_of_words(text, self.dimension)
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


class FlakyObjectStore(FileObjectStore):
    """File store whose reads or writes can be switched to fail."""

    def __init__(self, root: Path) -> None:
        super().__init__(root)
        self.fail_reads = False
        self.fail_writes = False

    async def read_blob(self, key: str) -> bytes:
        if self.fail_reads:
            raise PersistenceError(f"simulated read failure for {key}")
        return await super().read_blob(key)

    async def write_blobs(self, blobs: Mapping[str, bytes]) -> None:
        if self.fail_writes:
            raise PersistenceError("simulated write failure")
        await super().write_blobs(blobs)


class CountingStore(DocumentStore):
    """DocumentStore that counts load() calls."""

    def __init__(self, object_store) -> None:
        super().__init__(object_store)
        self.loads = 0

    async def load(self):
        self.loads += 1
        return await super().load()


async def no_sleep(_delay: float) -> None:
    return None


def make_doc(doc_id: str, body: str, **fields) -> Document:
    return Document(id=doc_id, body=body, **fields)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def object_store(tmp_path: Path) -> FlakyObjectStore:
    return FlakyObjectStore(tmp_path / "index")


@pytest.fixture
def store(object_store: FlakyObjectStore) -> CountingStore:
    return CountingStore(object_store)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        refresh_interval_minutes=60.0,
        embedding_backoff_base_seconds=0.0,
        embedding_backoff_max_seconds=0.0,
        query_cache_max_size=0,
    )
