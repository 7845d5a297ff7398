from __future__ import annotations

import hashlib
import math
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Optional

import httpx

TOKEN_PATTERN = re.compile(r"[a-z0-9_]+(?:['-][a-z0-9_]+)*")
BIGRAM_WEIGHT = 0.5


class EmbeddingError(RuntimeError):
    """Raised when embedding generation fails."""


class Embedder(ABC):
    """Text to fixed-dimension vector, shared by retrieval and curation storage."""

    provider: str
    model_name: str
    dimension: int

    @abstractmethod
    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Generate vectors for each text input."""

    async def embed(self, text: str) -> list[float]:
        """Embed one text; raises ``EmbeddingError`` on a malformed response."""

        vectors = await self.embed_texts([text])
        if len(vectors) != 1:
            raise EmbeddingError("Embedder returned no vector for the input text")
        return vectors[0]

    def zero_vector(self) -> list[float]:
        return [0.0] * self.dimension


class DeterministicEmbedder(Embedder):
    """Offline feature-hashing embedder for tests and local runs.

    Words and adjacent word pairs are hashed into signed buckets, so texts
    sharing vocabulary (and phrases like "hot reload") land close together
    without any model download.
    """

    provider = "deterministic"

    def __init__(self, dimension: int, model_name: str = "deterministic-v1") -> None:
        if dimension <= 0:
            raise EmbeddingError("Embedding dimension must be > 0")
        self.dimension = int(dimension)
        self.model_name = model_name

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._vectorize(text) for text in texts]

    def _vectorize(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        words = TOKEN_PATTERN.findall(text.lower())
        for word in words:
            self._accumulate(vector, word, 1.0)
        for left, right in zip(words, words[1:]):
            self._accumulate(vector, f"{left} {right}", BIGRAM_WEIGHT)
        return _normalize_vector(vector)

    def _accumulate(self, vector: list[float], feature: str, weight: float) -> None:
        digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
        bucket = int.from_bytes(digest[:4], byteorder="big") % self.dimension
        sign = -1.0 if digest[4] & 1 else 1.0
        vector[bucket] += sign * weight


class OpenAIEmbedder(Embedder):
    """OpenAI-compatible ``/v1/embeddings`` client.

    Inputs are sent in chunks of ``batch_size``; each chunk must come back
    complete and with the configured dimension.
    """

    provider = "openai"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        model_name: str,
        dimension: int,
        timeout_sec: float = 20.0,
        batch_size: int = 64,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if dimension <= 0:
            raise EmbeddingError("Embedding dimension must be > 0")
        if not api_key.strip():
            raise EmbeddingError("OpenAI embedding API key is empty")
        self.model_name = model_name
        self.dimension = int(dimension)
        self._api_key = api_key
        self._timeout_sec = timeout_sec
        self._batch_size = max(1, batch_size)
        self._http_client = http_client
        self._endpoint = f"{base_url.rstrip('/')}/v1/embeddings"

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            chunk = list(texts[start : start + self._batch_size])
            payload = await self._request(chunk)
            vectors.extend(self._parse_embeddings(payload, len(chunk)))
        return [_normalize_vector(vector) for vector in vectors]

    async def _request(self, chunk: list[str]) -> Any:
        body = {"model": self.model_name, "input": chunk}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            if self._http_client is not None:
                response = await self._http_client.post(self._endpoint, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout_sec) as client:
                    response = await client.post(self._endpoint, json=body, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Embedding request to {self._endpoint} failed") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise EmbeddingError("Embedding response is not JSON") from exc

    def _parse_embeddings(self, payload: Any, expected_size: int) -> list[list[float]]:
        rows = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(rows, list) or len(rows) != expected_size:
            raise EmbeddingError("Embedding response shape is invalid")

        # Rows may arrive out of input order.
        if all(isinstance(row, dict) and isinstance(row.get("index"), int) for row in rows):
            rows = sorted(rows, key=lambda row: row["index"])

        vectors: list[list[float]] = []
        for row in rows:
            values = row.get("embedding") if isinstance(row, dict) else None
            if not isinstance(values, list) or len(values) != self.dimension:
                raise EmbeddingError("Embedding row is missing or has the wrong dimension")
            try:
                vectors.append([float(value) for value in values])
            except (TypeError, ValueError) as exc:
                raise EmbeddingError("Embedding contains non-numeric values") from exc
        return vectors


def _normalize_vector(vector: list[float]) -> list[float]:
    norm = math.sqrt(sum(item * item for item in vector))
    if norm <= 0:
        return vector
    return [item / norm for item in vector]
