# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Two-stage ranking: approximate candidates, then exact cosine re-score.

The ANN index only proposes candidates. Hit/miss decisions are always
made on the full-precision scores computed here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

import numpy as np

from ..errors import DimensionMismatch
from .models import EmbeddingRecord

if TYPE_CHECKING:
    from .engine import CacheEngine


@dataclass(frozen=True)
class ScoredCandidate:
    """A cached record with its exact similarity to the query."""

    record: EmbeddingRecord
    similarity: float


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """dot(a, b) / (|a| * |b|), or 0.0 when either vector has zero norm."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatch(va.shape[0], vb.shape[0], operation="similarity")

    norm = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    similarity = float(np.dot(va, vb)) / norm
    return max(-1.0, min(1.0, similarity))


async def approximate_candidates(
    engine: CacheEngine,
    embedding: Sequence[float],
    k: int,
) -> list[EmbeddingRecord]:
    """Stage one: up to k hydrated records proposed by the ANN index."""
    return await engine.search_similar(embedding, k)


def exact_rescore(
    embedding: Sequence[float],
    candidates: Sequence[EmbeddingRecord],
) -> list[ScoredCandidate]:
    """Stage two: exact cosine similarity for every candidate, input order kept."""
    return [
        ScoredCandidate(record=candidate, similarity=cosine_similarity(embedding, candidate.embedding))
        for candidate in candidates
    ]


def best_match(scored: Sequence[ScoredCandidate]) -> ScoredCandidate | None:
    """Highest-similarity candidate; ties resolve to the first seen."""
    best: ScoredCandidate | None = None
    for candidate in scored:
        if best is None or candidate.similarity > best.similarity:
            best = candidate
    return best
