# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""SemanticResponseCache: the cache wired from settings.

Usage:
    async with SemanticResponseCache() as cache:
        answer = await cache.query("My printer won't turn on", "I need help with my 3d printer")

Logging is configured from log_level and log_format on construction;
pass configure_logs=False when the host application owns logging.
"""

from typing import Callable

import structlog

from .cache.decision import CacheStats, QueryDecision, QueryDecisionEngine
from .cache.engine import CacheEngine
from .cache.record_store import RecordStore, RedisRecordStore
from .cache.sql_store import SqlRecordStore
from .config import Settings, get_settings
from .errors import ConfigurationError
from .logging_config import configure_logging
from .providers.embedder import EmbeddingProvider, LocalEmbedder, OpenAIEmbedder
from .providers.generator import OpenAIChatGenerator, ResponseGenerator

logger = structlog.get_logger(__name__)

StoreFactory = Callable[[int], RecordStore]


class SemanticResponseCache:
    """Embedding provider + generator + cache engine behind one query call."""

    def __init__(
        self,
        settings: Settings | None = None,
        embedder: EmbeddingProvider | None = None,
        generator: ResponseGenerator | None = None,
        store_factory: StoreFactory | None = None,
        configure_logs: bool = True,
    ) -> None:
        self._settings = settings or get_settings()
        if configure_logs:
            configure_logging(self._settings.log_level, self._settings.log_format)
        self._embedder = embedder or self._build_embedder()
        self._generator = generator or self._build_generator()
        self._store_factory = store_factory or self._build_store
        self._engine: CacheEngine | None = None
        self._decisions: QueryDecisionEngine | None = None
        self._stats = CacheStats()

    def _build_embedder(self) -> EmbeddingProvider:
        s = self._settings
        if s.embedding_provider == "openai":
            if not s.openai_api_key:
                raise ConfigurationError(
                    "OpenAI API key is required for OpenAI embeddings.", setting="openai_api_key"
                )
            return OpenAIEmbedder(
                s.openai_api_key,
                model=s.openai_embedding_model,
                base_url=s.openai_base_url,
                timeout=s.provider_timeout_seconds,
            )
        return LocalEmbedder(s.embedding_model)

    def _build_generator(self) -> ResponseGenerator:
        s = self._settings
        if not s.openai_api_key:
            raise ConfigurationError(
                "OpenAI API key is required for response generation.", setting="openai_api_key"
            )
        return OpenAIChatGenerator(
            s.openai_api_key,
            model=s.chat_model,
            base_url=s.openai_base_url,
            timeout=s.provider_timeout_seconds,
        )

    def _build_store(self, dimension: int) -> RecordStore:
        s = self._settings
        if s.uses_sql_store:
            return SqlRecordStore.from_url(
                s.database_url, dimension, ttl_seconds=s.cache_ttl_seconds, prefix=s.collection_prefix
            )
        return RedisRecordStore.from_url(
            s.redis_url, dimension, ttl_seconds=s.cache_ttl_seconds, prefix=s.collection_prefix
        )

    def _resolve_dimension(self) -> int:
        configured = self._settings.embedding_dimension
        provided = self._embedder.dimension
        if configured and provided and configured != provided:
            raise ConfigurationError(
                f"embedding_dimension is {configured} but the embedding provider produces {provided}",
                setting="embedding_dimension",
            )
        dimension = configured or provided
        if not dimension:
            raise ConfigurationError(
                "Embedding dimension is unknown; set embedding_dimension", setting="embedding_dimension"
            )
        return dimension

    @property
    def stats(self) -> CacheStats:
        return self._stats

    @property
    def hit_count(self) -> int:
        return self._stats.hits

    @property
    def miss_count(self) -> int:
        return self._stats.misses

    @property
    def engine(self) -> CacheEngine | None:
        return self._engine

    async def initialize(self) -> None:
        """Prepare the embedding provider, then load the cache for its dimension."""
        if self._decisions is not None:
            return
        await self._embedder.initialize()
        dimension = self._resolve_dimension()
        s = self._settings

        engine = CacheEngine(
            self._store_factory(dimension),
            dimension,
            default_capacity=s.index_initial_capacity,
            growth_increment=s.index_growth_increment,
            hnsw_m=s.hnsw_m,
            hnsw_ef_construction=s.hnsw_ef_construction,
            hnsw_ef_search=s.hnsw_ef_search,
        )
        await engine.initialize()
        self._engine = engine
        self._decisions = QueryDecisionEngine(
            engine,
            self._embedder,
            self._generator,
            similarity_threshold=s.similarity_threshold,
            k=s.search_k,
            prompt_prefix=s.prompt_prefix,
        )
        logger.info(
            "semantic_cache_initialized",
            dimension=dimension,
            collection=engine.record_store.collection,
            threshold=s.similarity_threshold,
        )

    async def decide(self, query: str, additional_context: str | None = None) -> QueryDecision:
        """Answer a query and report whether it was served from cache."""
        if self._decisions is None:
            await self.initialize()
        return await self._decisions.decide(query, additional_context, stats=self._stats)

    async def query(self, query: str, additional_context: str | None = None) -> str:
        decision = await self.decide(query, additional_context)
        return decision.response

    async def clear_cache(self) -> None:
        if self._engine is None:
            await self.initialize()
        await self._engine.clear()

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.close()
        for provider in (self._embedder, self._generator):
            aclose = getattr(provider, "aclose", None)
            if aclose is not None:
                await aclose()

    async def __aenter__(self) -> "SemanticResponseCache":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
