"""In-process embedding provider using sentence-transformers."""

import asyncio

from rag_search.errors import ProviderError, ProviderErrorKind


class LocalEmbeddingProvider:
    """
    Embedding provider running a sentence-transformers model locally.

    Needs the ``local`` extra. The model is loaded lazily on first use and
    encoding runs in a worker thread so the event loop stays free.
    """

    def __init__(self, model_name: str, max_input_chars: int = 8000):
        self.model_name = model_name
        self.max_input_chars = max_input_chars
        self._model = None

    def _get_model(self):
        """Lazy load the embedding model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            self._model = SentenceTransformer(self.model_name)
        return self._model

    def _encode(self, text: str) -> list[float]:
        model = self._get_model()
        embedding = model.encode([text[: self.max_input_chars]], normalize_embeddings=True)
        return [float(x) for x in embedding[0]]

    async def embed(self, text: str, *, timeout: float) -> list[float]:
        if not text.strip():
            raise ProviderError(ProviderErrorKind.INVALID_INPUT, "empty text")
        try:
            return await asyncio.wait_for(asyncio.to_thread(self._encode, text), timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(ProviderErrorKind.TIMEOUT, f"local model exceeded {timeout}s") from e
        except Exception as e:
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, f"{type(e).__name__}: {e}") from e

    async def aclose(self) -> None:
        self._model = None
