"""Data models for indexed documents and their embeddings."""

import hashlib
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator

_WHITESPACE = re.compile(r"\s+")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_text(text: str) -> str:
    """Normalize text before hashing so cosmetic edits keep the same hash."""
    text = unicodedata.normalize("NFC", text).lower()
    return _WHITESPACE.sub(" ", text).strip()


def compute_content_hash(text: str) -> str:
    """Compute SHA256 hash of normalized content."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


class Document(BaseModel):
    """A unit of indexed content (a file, a web page, an image description)."""

    id: str
    title: str = ""
    summary: str = ""
    body: str = ""
    content_category: str = "text"  # "text" | "image"
    file_kind: str = ""  # "pdf", "html", "png", ...
    source_locator: str = ""
    author: str | None = None
    language: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None
    indexed_at: datetime | None = None  # Set by the index writer only
    size_bytes: int = 0
    key_phrases: list[str] = Field(default_factory=list)
    extra_metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("created_at", "modified_at", "indexed_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @field_validator("key_phrases")
    @classmethod
    def _dedupe_phrases(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @property
    def content_hash(self) -> str:
        return compute_content_hash(self.body)

    @property
    def searchable_text(self) -> str:
        return " ".join(part for part in (self.title, self.summary, self.body) if part)


class Embedding(BaseModel):
    """Vector for one document, tagged with the hash of the text it came from."""

    document_id: str
    content_hash: str
    vector: list[float]

    @property
    def dimension(self) -> int:
        return len(self.vector)
