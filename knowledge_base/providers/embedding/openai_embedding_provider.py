"""Embeddings through the ``openai`` async client.

Talks to api.openai.com by default; setting ``OPENAI_BASE_URL`` points the
same client at any OpenAI-compatible server.
"""

from __future__ import annotations

import asyncio

import openai
import structlog

from knowledge_base.config.settings import Settings
from knowledge_base.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_base.utils.concurrency import with_timeout
from knowledge_base.utils.errors import EmbeddingProviderError

logger = structlog.get_logger(logger_name=__name__)

_FALLBACK_MODEL = "text-embedding-3-small"
_FALLBACK_DIMENSION = 1536

_DIMENSIONS_BY_MODEL: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Turns chunk text and queries into vectors.

    Input is whitespace-trimmed, then split into requests of at most
    ``embedding_batch_size`` texts.  A failure in any request fails the
    whole call; partial results are never returned.
    """

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._api_key = settings.openai_api_key
        self._model = settings.openai_embedding_model or _FALLBACK_MODEL
        self._dimension = _DIMENSIONS_BY_MODEL.get(self._model, _FALLBACK_DIMENSION)
        self._batch_size = max(1, settings.embedding_batch_size or 100)
        self._timeout = settings.external_call_timeout
        self._name = "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        self._client = client or openai.AsyncOpenAI(
            api_key=self._api_key,
            base_url=settings.openai_base_url or None,
        )

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        response = await with_timeout(
            self._client.embeddings.create(input=batch, model=self._model),
            self._timeout,
        )
        ordered = sorted(response.data, key=lambda item: item.index)
        if len(ordered) != len(batch):
            raise EmbeddingProviderError(
                message=f"Embedding count mismatch: {len(batch)} inputs, {len(ordered)} vectors",
                provider_name=self._name,
            )
        logger.info(
            "embedding_batch_done",
            provider=self._name,
            model=self._model,
            inputs=len(batch),
            tokens=getattr(response.usage, "total_tokens", None),
        )
        return [item.embedding for item in ordered]

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Vectors for *texts*, index-aligned with the input."""
        trimmed = [text.strip() for text in texts]
        vectors: list[list[float]] = []
        try:
            for offset in range(0, len(trimmed), self._batch_size):
                vectors += await self._embed_batch(trimmed[offset : offset + self._batch_size])
        except openai.APIError as exc:
            raise EmbeddingProviderError(
                message=f"{self._name} API error: {exc}", provider_name=self._name
            ) from exc
        except asyncio.TimeoutError as exc:
            raise EmbeddingProviderError(
                message=f"{self._name} request timed out after {self._timeout}s",
                provider_name=self._name,
            ) from exc
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        (vector,) = await self.embed([text])
        return vector

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return bool(self._api_key)
