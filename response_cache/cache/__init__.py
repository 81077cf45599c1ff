# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Similarity-gated response cache core.

ANN candidate retrieval (faiss HNSW) over a durable record store,
with exact cosine re-scoring before every hit/miss decision.
"""

from .decision import CacheStats, DecisionOutcome, QueryDecision, QueryDecisionEngine
from .engine import CacheEngine
from .models import CacheState, EmbeddingRecord
from .record_store import RecordStore, RedisRecordStore
from .similarity import ScoredCandidate, approximate_candidates, best_match, cosine_similarity, exact_rescore
from .sql_store import SqlRecordStore
from .vector_index import Neighbor, VectorIndex

__all__ = [
    "CacheEngine",
    "CacheState",
    "CacheStats",
    "DecisionOutcome",
    "EmbeddingRecord",
    "Neighbor",
    "QueryDecision",
    "QueryDecisionEngine",
    "RecordStore",
    "RedisRecordStore",
    "ScoredCandidate",
    "SqlRecordStore",
    "VectorIndex",
    "approximate_candidates",
    "best_match",
    "cosine_similarity",
    "exact_rescore",
]
