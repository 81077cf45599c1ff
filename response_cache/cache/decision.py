# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Hit/miss decision for a natural-language query.

1. Embed the query (provider failures propagate, no retry)
2. Ask the engine for approximate candidates (fan-out k)
3. No candidates: MISS
4. Re-score candidates with exact cosine similarity, keep the best
5. best >= threshold: HIT, serve the cached response
6. Otherwise: MISS, generate a fresh response and store it
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TypeVar

import structlog

from ..errors import CacheError, ProviderError
from ..providers.embedder import EmbeddingProvider
from ..providers.generator import ResponseGenerator, build_prompt
from .engine import DEFAULT_K, CacheEngine
from .metrics import CACHE_BEST_SIMILARITY, CACHE_DECISION_LATENCY_SECONDS, CACHE_QUERIES_TOTAL, PROVIDER_ERRORS_TOTAL
from .similarity import approximate_candidates, best_match, exact_rescore

logger = structlog.get_logger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.8

T = TypeVar("T")


class DecisionOutcome(str, Enum):
    """Terminal outcome of a query."""

    HIT = "hit"
    MISS = "miss"


@dataclass(frozen=True)
class QueryDecision:
    """Result of one query, with the metrics describing how it was reached.

    Attributes:
        outcome: HIT when a cached response was served
        response: Text returned to the caller
        similarity: Exact similarity of the best candidate (None without candidates)
        record_id: Hit record, or the record stored on a miss
        candidates: Number of candidates the index proposed
        latency_seconds: Wall time including provider calls
    """

    outcome: DecisionOutcome
    response: str
    similarity: float | None
    record_id: int
    candidates: int
    latency_seconds: float

    @property
    def is_hit(self) -> bool:
        return self.outcome is DecisionOutcome.HIT


@dataclass
class CacheStats:
    """Caller-owned hit/miss counters."""

    hits: int = 0
    misses: int = 0

    def record(self, decision: QueryDecision) -> None:
        if decision.is_hit:
            self.hits += 1
        else:
            self.misses += 1

    @property
    def total(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        return self.hits / self.total if self.total else 0.0


class QueryDecisionEngine:
    """Serves cached responses for similar queries, generates otherwise."""

    def __init__(
        self,
        engine: CacheEngine,
        embedder: EmbeddingProvider,
        generator: ResponseGenerator,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        k: int = DEFAULT_K,
        prompt_prefix: str | None = None,
    ) -> None:
        if not 0.0 < similarity_threshold <= 1.0:
            raise ValueError(f"similarity_threshold must be in (0, 1], got {similarity_threshold}")
        if k <= 0:
            raise ValueError(f"k must be positive, got {k}")
        self._engine = engine
        self._embedder = embedder
        self._generator = generator
        self._threshold = similarity_threshold
        self._k = k
        self._prompt_prefix = prompt_prefix

    @property
    def similarity_threshold(self) -> float:
        return self._threshold

    @property
    def k(self) -> int:
        return self._k

    async def _call_provider(self, provider: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except ProviderError:
            PROVIDER_ERRORS_TOTAL.labels(provider=provider).inc()
            raise
        except CacheError:
            raise
        except Exception as e:
            PROVIDER_ERRORS_TOTAL.labels(provider=provider).inc()
            raise ProviderError(provider, f"{provider} provider failed: {e}") from e

    async def _miss(self, query: str, embedding: list[float], additional_context: str | None) -> tuple[str, int]:
        prompt = build_prompt(query, self._prompt_prefix, additional_context)
        response = await self._call_provider("generation", lambda: self._generator.generate(prompt))
        record = await self._engine.store(query, embedding, response)
        return response, record.id

    async def decide(
        self,
        query: str,
        additional_context: str | None = None,
        stats: CacheStats | None = None,
    ) -> QueryDecision:
        """Run the full hit/miss procedure for one query."""
        start = time.perf_counter()
        embedding = await self._call_provider("embedding", lambda: self._embedder.embed(query))

        candidates = await approximate_candidates(self._engine, embedding, self._k)
        best = best_match(exact_rescore(embedding, candidates)) if candidates else None
        if best is not None:
            CACHE_BEST_SIMILARITY.observe(best.similarity)

        if best is not None and best.similarity >= self._threshold:
            outcome = DecisionOutcome.HIT
            response = best.record.response
            record_id = best.record.id
            logger.info("cache_hit", similarity=round(best.similarity, 4), record_id=record_id)
        else:
            outcome = DecisionOutcome.MISS
            logger.info(
                "cache_miss",
                candidates=len(candidates),
                best_similarity=round(best.similarity, 4) if best else None,
            )
            response, record_id = await self._miss(query, embedding, additional_context)

        latency = time.perf_counter() - start
        CACHE_QUERIES_TOTAL.labels(outcome=outcome.value).inc()
        CACHE_DECISION_LATENCY_SECONDS.labels(outcome=outcome.value).observe(latency)

        decision = QueryDecision(
            outcome=outcome,
            response=response,
            similarity=best.similarity if best else None,
            record_id=record_id,
            candidates=len(candidates),
            latency_seconds=latency,
        )
        if stats is not None:
            stats.record(decision)
        return decision

    async def query(
        self,
        query: str,
        additional_context: str | None = None,
        stats: CacheStats | None = None,
    ) -> str:
        """Response text only; see decide() for the full decision."""
        decision = await self.decide(query, additional_context, stats)
        return decision.response
