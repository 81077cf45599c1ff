# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Approximate nearest-neighbour index over cached query embeddings.

Wraps a faiss HNSW graph using inner product on L2-normalized vectors,
which ranks points by cosine similarity. faiss addresses points by
insertion position; a growable label buffer maps positions back to
record ids. Capacity is the size of that buffer and only ever grows.
"""

from typing import NamedTuple, Sequence

import faiss
import numpy as np
import structlog

from ..errors import DimensionMismatch, DuplicateRecordId, IndexAlreadyInitialized, UninitializedIndex

logger = structlog.get_logger(__name__)

DEFAULT_GROWTH_INCREMENT = 1000
DEFAULT_M = 16
DEFAULT_EF_CONSTRUCTION = 200
DEFAULT_EF_SEARCH = 50


class Neighbor(NamedTuple):
    """A search hit: record id and its approximate cosine similarity."""

    id: int
    score: float


def _as_unit_row(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    """Return a (1, d) float32 row scaled to unit length (zero vectors stay zero)."""
    row = np.asarray(vector, dtype=np.float32).reshape(1, -1).copy()
    norm = float(np.linalg.norm(row))
    if norm > 0:
        row /= norm
    return np.ascontiguousarray(row)


class VectorIndex:
    """HNSW index with cosine ranking and monotone capacity growth."""

    def __init__(
        self,
        dimension: int,
        growth_increment: int = DEFAULT_GROWTH_INCREMENT,
        m: int = DEFAULT_M,
        ef_construction: int = DEFAULT_EF_CONSTRUCTION,
        ef_search: int = DEFAULT_EF_SEARCH,
    ) -> None:
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        if growth_increment <= 0:
            raise ValueError(f"growth_increment must be positive, got {growth_increment}")
        self._dimension = dimension
        self._growth_increment = growth_increment
        self._m = m
        self._ef_construction = ef_construction
        self._ef_search = ef_search

        self._index: faiss.IndexHNSWFlat | None = None
        self._labels: np.ndarray | None = None  # position -> record id
        self._positions: dict[int, int] = {}  # record id -> position

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def is_initialized(self) -> bool:
        return self._index is not None

    def initialize(self, initial_capacity: int) -> None:
        """Allocate the graph and label buffer for ``initial_capacity`` points.

        Only valid once per instance; a cleared cache builds a new index.
        """
        if self._index is not None:
            raise IndexAlreadyInitialized()
        if initial_capacity <= 0:
            raise ValueError(f"initial_capacity must be positive, got {initial_capacity}")

        index = faiss.IndexHNSWFlat(self._dimension, self._m, faiss.METRIC_INNER_PRODUCT)
        index.hnsw.efConstruction = self._ef_construction
        index.hnsw.efSearch = self._ef_search

        self._index = index
        self._labels = np.full(initial_capacity, -1, dtype=np.int64)
        self._positions = {}
        logger.debug(
            "vector_index_initialized",
            dimension=self._dimension,
            capacity=initial_capacity,
            m=self._m,
        )

    def current_count(self) -> int:
        """Number of points inserted so far."""
        return len(self._positions)

    def capacity(self) -> int:
        """Number of points the label buffer can hold before growing."""
        if self._labels is None:
            return 0
        return int(self._labels.shape[0])

    def __contains__(self, record_id: int) -> bool:
        return record_id in self._positions

    def _check_dimension(self, vector: Sequence[float] | np.ndarray, operation: str) -> None:
        if len(vector) != self._dimension:
            raise DimensionMismatch(self._dimension, len(vector), operation=operation)

    def _grow(self) -> None:
        old_capacity = self.capacity()
        new_capacity = old_capacity + self._growth_increment
        grown = np.full(new_capacity, -1, dtype=np.int64)
        grown[:old_capacity] = self._labels
        self._labels = grown
        logger.info("vector_index_resized", old_capacity=old_capacity, new_capacity=new_capacity)

    def insert(self, vector: Sequence[float] | np.ndarray, record_id: int) -> None:
        """Add one point under ``record_id``.

        Duplicate ids are rejected and leave the index unchanged.
        """
        if self._index is None:
            raise UninitializedIndex("insert")
        self._check_dimension(vector, "insert")
        if record_id in self._positions:
            raise DuplicateRecordId(record_id)

        position = self.current_count()
        if position >= self.capacity():
            self._grow()

        self._index.add(_as_unit_row(vector))
        self._labels[position] = record_id
        self._positions[record_id] = position

    def search(self, vector: Sequence[float] | np.ndarray, k: int) -> list[Neighbor]:
        """Return up to ``min(k, current_count())`` neighbours, most similar first.

        Results are approximate; an empty index yields an empty list.
        """
        if self._index is None:
            raise UninitializedIndex("search")
        self._check_dimension(vector, "search")

        limit = min(k, self.current_count())
        if limit <= 0:
            return []

        params = faiss.SearchParametersHNSW(efSearch=max(self._ef_search, limit))
        scores, positions = self._index.search(_as_unit_row(vector), limit, params=params)

        neighbors = []
        for score, position in zip(scores[0], positions[0]):
            if position < 0:
                continue
            neighbors.append(Neighbor(id=int(self._labels[position]), score=float(score)))
        return neighbors
