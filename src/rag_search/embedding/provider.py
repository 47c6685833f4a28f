"""Embedding provider clients for an external text-embedding API."""

from typing import Protocol

import httpx
import structlog

from rag_search.errors import ProviderError, ProviderErrorKind

logger = structlog.get_logger()


class EmbeddingProvider(Protocol):
    """Anything that turns one text into one vector."""

    async def embed(self, text: str, *, timeout: float) -> list[float]:
        """
        Embed a single text.

        Raises:
            ProviderError: On rate limiting, unavailability, bad input or timeout
        """
        ...

    async def aclose(self) -> None:
        ...


class HttpEmbeddingProvider:
    """
    Client for an OpenAI-compatible ``/embeddings`` endpoint.

    Maps HTTP and transport failures onto ProviderError kinds so callers
    can decide between retrying, degrading and giving up.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str | None = None,
        dimensions: int | None = None,
        max_input_chars: int = 8000,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the provider.

        Args:
            base_url: API root, e.g. "https://api.openai.com/v1"
            model: Embedding model name
            api_key: Bearer token, if the endpoint needs one
            dimensions: Requested output dimensionality (model dependent)
            max_input_chars: Longer inputs are truncated before sending
            client: Pre-built httpx client (tests inject a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.dimensions = dimensions
        self.max_input_chars = max_input_chars
        self._client = client or httpx.AsyncClient()

    def _get_headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get_payload(self, text: str) -> dict:
        payload = {"model": self.model, "input": [text[: self.max_input_chars]]}
        if self.dimensions:
            payload["dimensions"] = self.dimensions
        return payload

    async def embed(self, text: str, *, timeout: float) -> list[float]:
        if not text.strip():
            raise ProviderError(ProviderErrorKind.INVALID_INPUT, "empty text")

        try:
            response = await self._client.post(
                f"{self.base_url}/embeddings",
                json=self._get_payload(text),
                headers=self._get_headers(),
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise ProviderError(ProviderErrorKind.TIMEOUT, str(e)) from e
        except httpx.HTTPError as e:
            # Transport, decoding and redirect failures alike
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, str(e)) from e

        if response.status_code == 429:
            raise ProviderError(ProviderErrorKind.RATE_LIMITED, response.text[:200])
        if response.status_code >= 500:
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE,
                f"HTTP {response.status_code}",
            )
        if response.status_code >= 400:
            raise ProviderError(
                ProviderErrorKind.INVALID_INPUT,
                f"HTTP {response.status_code}: {response.text[:200]}",
            )

        vector = self._extract_vector(response)
        logger.debug("embedding_received", model=self.model, dimension=len(vector), text_length=len(text))
        return vector

    def _extract_vector(self, response: httpx.Response) -> list[float]:
        try:
            data = response.json()
            vector = [float(x) for x in data["data"][0]["embedding"]]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                ProviderErrorKind.INVALID_INPUT,
                f"malformed embedding response: {e}",
            ) from e
        if not vector:
            raise ProviderError(ProviderErrorKind.INVALID_INPUT, "empty embedding")
        return vector

    async def aclose(self) -> None:
        await self._client.aclose()
