"""Error taxonomy for the search engine."""

from enum import Enum


class RagSearchError(Exception):
    """Base class for all engine errors."""


class ValidationError(RagSearchError):
    """A request or document has the wrong shape. Never retried."""

    def __init__(self, reason: str, document_id: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.document_id = document_id


class ProviderErrorKind(str, Enum):
    """Failure classes reported by an embedding provider."""

    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    INVALID_INPUT = "invalid_input"
    TIMEOUT = "timeout"


class ProviderError(RagSearchError):
    """The embedding provider failed to produce a vector."""

    def __init__(self, kind: ProviderErrorKind, message: str = ""):
        super().__init__(f"{kind.value}: {message}" if message else kind.value)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind is not ProviderErrorKind.INVALID_INPUT


class PersistenceError(RagSearchError):
    """Reading or writing the document/embedding store failed."""


class CorruptionError(RagSearchError):
    """A stored or generated record is inconsistent (wrong dimension, orphan)."""


class BlobNotFoundError(RagSearchError):
    """The requested object store key does not exist."""

    def __init__(self, key: str):
        super().__init__(f"blob not found: {key}")
        self.key = key
