"""Embedding providers.

Everything that needs a vector goes through the EmbeddingProvider
Protocol. OpenAIEmbeddingProvider talks to any OpenAI-compatible
/embeddings endpoint (OpenRouter by default).
"""

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx
import numpy as np

from .errors import EmbeddingDimensionError, EmbeddingError

logger = logging.getLogger(__name__)

EMBEDDING_MODEL = "baai/bge-m3"
EMBEDDING_DIMS = 1024
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class EmbeddingProvider(Protocol):
    """Turns text into fixed-length vectors, deterministically."""

    dimensions: int

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        ...

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed several texts, one vector per input, same order."""
        ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors, 0.0 if either is all zeros."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class OpenAIEmbeddingProvider:
    """EmbeddingProvider backed by an OpenAI-compatible HTTP API."""

    def __init__(
        self,
        api_key: str,
        model: str = EMBEDDING_MODEL,
        dimensions: int = EMBEDDING_DIMS,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            api_key: Bearer token for the embedding API.
            model: Embedding model name.
            dimensions: Expected vector length; other lengths are rejected.
            base_url: API root, without the trailing /embeddings.
            timeout: Request timeout in seconds.
            client: Optional preconfigured httpx client (mainly for tests).
        """
        if dimensions < 1:
            raise ValueError("dimensions must be at least 1")

        self.model = model
        self.dimensions = dimensions
        self._url = base_url.rstrip("/") + "/embeddings"
        self._headers = {"Authorization": f"Bearer {api_key}"}
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts in a single request.

        Raises:
            EmbeddingError: On transport errors, error statuses or a
                response that doesn't match the request.
            EmbeddingDimensionError: If a vector has the wrong length.
        """
        if not texts:
            return []

        payload = {
            "model": self.model,
            "input": list(texts),
            "encoding_format": "float",
        }

        try:
            response = await self._get_client().post(
                self._url, json=payload, headers=self._headers
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e
        except ValueError as e:
            raise EmbeddingError(f"Failed to generate embedding: invalid JSON ({e})") from e

        vectors = self._parse_vectors(data)

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding count mismatch: expected {len(texts)}, got {len(vectors)}"
            )

        for vector in vectors:
            if len(vector) != self.dimensions:
                raise EmbeddingDimensionError(self.dimensions, len(vector))

        return vectors

    def _parse_vectors(self, data: Any) -> list[list[float]]:
        items = data.get("data") if isinstance(data, dict) else None
        if not items:
            raise EmbeddingError("Empty embedding response")

        try:
            # Sort by index to ensure correct order
            ordered = sorted(items, key=lambda item: item.get("index", 0))
            return [[float(x) for x in item["embedding"]] for item in ordered]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise EmbeddingError(f"Malformed embedding response: {e}") from e

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


class CachedEmbeddingProvider:
    """Memoizes another provider by exact text.

    Unbounded; meant for short-lived processes or small vocabularies of
    repeated queries.
    """

    def __init__(self, provider: EmbeddingProvider) -> None:
        self.provider = provider
        self.dimensions = provider.dimensions
        self._cache: dict[str, list[float]] = {}

    async def embed(self, text: str) -> list[float]:
        if text not in self._cache:
            self._cache[text] = await self.provider.embed(text)
        return list(self._cache[text])

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        missing = list(dict.fromkeys(t for t in texts if t not in self._cache))
        if missing:
            vectors = await self.provider.embed_many(missing)
            self._cache.update(zip(missing, vectors))
            logger.debug("Embedded %d uncached texts", len(missing))
        return [list(self._cache[t]) for t in texts]

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
