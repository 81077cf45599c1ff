# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Embedding providers: text in, fixed-length vector out.

- LocalEmbedder: sentence-transformers model run in-process
  (default all-MiniLM-L6-v2, 384 dims, zero external API calls)
- OpenAIEmbedder: OpenAI /embeddings endpoint over httpx
"""

import asyncio
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

from ..errors import ProviderError
from .http import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, OpenAIHTTPClient

logger = structlog.get_logger(__name__)

LOCAL_MODEL_NAME = "all-MiniLM-L6-v2"
OPENAI_EMBEDDING_MODEL = "text-embedding-ada-002"

# Known output sizes; other models are probed with one request
OPENAI_MODEL_DIMENSIONS = {
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}

# Lazy-loaded models, keyed by name
_models: dict[str, Any] = {}


def _get_model(model_name: str) -> Any:
    """Lazy-load a sentence-transformers model."""
    model = _models.get(model_name)
    if model is None:
        from sentence_transformers import SentenceTransformer

        logger.info("Loading embedding model", model=model_name)
        model = SentenceTransformer(model_name)
        _models[model_name] = model
        logger.info(
            "Embedding model loaded",
            model=model_name,
            dim=model.get_sentence_embedding_dimension(),
        )
    return model


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Turns text into a vector whose length is fixed per provider."""

    @property
    def dimension(self) -> int | None:
        ...

    async def initialize(self) -> None:
        ...

    async def embed(self, text: str) -> list[float]:
        ...


class LocalEmbedder:
    """Wraps sentence-transformers with mean pooling and L2 normalization."""

    name = "local"

    def __init__(self, model_name: str = LOCAL_MODEL_NAME) -> None:
        self.model_name = model_name
        self._dim: int | None = None

    @property
    def dimension(self) -> int | None:
        return self._dim

    async def initialize(self) -> None:
        """Load the model and learn its embedding size."""
        try:
            model = await asyncio.to_thread(_get_model, self.model_name)
        except Exception as e:
            raise ProviderError(self.name, f"Could not load model {self.model_name}: {e}") from e
        self._dim = int(model.get_sentence_embedding_dimension())

    async def embed(self, text: str) -> list[float]:
        if self._dim is None:
            await self.initialize()
        model = _get_model(self.model_name)
        try:
            vec = await asyncio.to_thread(model.encode, text, normalize_embeddings=True)
        except Exception as e:
            raise ProviderError(self.name, f"Local embedding failed: {e}") from e
        return [float(v) for v in vec.tolist()]

    async def aclose(self) -> None:
        return None


class OpenAIEmbedder:
    """OpenAI embeddings endpoint; the vector size comes from the model."""

    name = "openai-embeddings"

    def __init__(
        self,
        api_key: str,
        model: str = OPENAI_EMBEDDING_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self._http = OpenAIHTTPClient(api_key, self.name, base_url=base_url, timeout=timeout, client=client)
        self._dim: int | None = OPENAI_MODEL_DIMENSIONS.get(model)

    @property
    def dimension(self) -> int | None:
        return self._dim

    async def initialize(self) -> None:
        """Probe the endpoint once when the model's size is not known."""
        if self._dim is None:
            await self.embed("dimension probe")

    async def embed(self, text: str) -> list[float]:
        data = await self._http.post("/embeddings", {"input": text, "model": self.model})
        try:
            embedding = [float(v) for v in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderError(self.name, "Malformed embeddings response") from e
        if self._dim is None:
            self._dim = len(embedding)
            logger.info("embedding_dimension_discovered", model=self.model, dim=self._dim)
        return embedding

    async def aclose(self) -> None:
        await self._http.aclose()
