# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Prometheus metrics for cache decisions and index size."""

from prometheus_client import Counter, Gauge, Histogram

from ..config import get_settings

settings = get_settings()
prefix = settings.metrics_prefix


CACHE_QUERIES_TOTAL = Counter(
    f"{prefix}_queries_total",
    "Total cache queries by outcome",
    ["outcome"],  # hit, miss
)

CACHE_DECISION_LATENCY_SECONDS = Histogram(
    f"{prefix}_decision_latency_seconds",
    "End-to-end query latency including provider calls",
    ["outcome"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

CACHE_BEST_SIMILARITY = Histogram(
    f"{prefix}_best_similarity",
    "Exact cosine similarity of the best candidate per query",
    buckets=(0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.85, 0.9, 0.95, 0.98, 1.0),
)

PROVIDER_ERRORS_TOTAL = Counter(
    f"{prefix}_provider_errors_total",
    "Failed embedding/generation provider calls",
    ["provider"],
)

INDEX_POINTS = Gauge(
    f"{prefix}_index_points",
    "Points currently held by the vector index",
)

INDEX_CAPACITY = Gauge(
    f"{prefix}_index_capacity",
    "Allocated capacity of the vector index",
)
