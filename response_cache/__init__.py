# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Semantic response cache for generative text APIs."""

from .cache import (
    CacheEngine,
    CacheStats,
    DecisionOutcome,
    EmbeddingRecord,
    QueryDecision,
    QueryDecisionEngine,
    RedisRecordStore,
    SqlRecordStore,
    VectorIndex,
)
from .client import SemanticResponseCache
from .config import Settings, get_settings
from .errors import (
    CacheError,
    CacheErrorCode,
    ConfigurationError,
    CorruptRecord,
    DimensionMismatch,
    DuplicateRecordId,
    IndexAlreadyInitialized,
    ProviderError,
    UninitializedIndex,
)
from .logging_config import configure_logging

__version__ = "0.1.0"

__all__ = [
    "SemanticResponseCache",
    "Settings",
    "get_settings",
    "CacheEngine",
    "CacheStats",
    "DecisionOutcome",
    "EmbeddingRecord",
    "QueryDecision",
    "QueryDecisionEngine",
    "RedisRecordStore",
    "SqlRecordStore",
    "VectorIndex",
    "CacheError",
    "CacheErrorCode",
    "ConfigurationError",
    "CorruptRecord",
    "DimensionMismatch",
    "DuplicateRecordId",
    "IndexAlreadyInitialized",
    "ProviderError",
    "UninitializedIndex",
    "configure_logging",
]
