# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Cache engine keeping the record store and vector index consistent.

State machine:
    EMPTY --initialize/search/store--> LOADING --ok--> READY
    LOADING --error--> EMPTY
    READY --clear--> EMPTY

The store is the source of truth. The index is rebuilt from it on every
load, so a crash between a record write and its index insert heals on
the next load.
"""

import asyncio
from typing import Sequence

import structlog

from ..errors import CorruptRecord, DimensionMismatch, DuplicateRecordId
from .metrics import INDEX_CAPACITY, INDEX_POINTS
from .models import CacheState, EmbeddingRecord
from .record_store import RecordStore
from .vector_index import (
    DEFAULT_EF_CONSTRUCTION,
    DEFAULT_EF_SEARCH,
    DEFAULT_GROWTH_INCREMENT,
    DEFAULT_M,
    VectorIndex,
)

logger = structlog.get_logger(__name__)

DEFAULT_CAPACITY = 1000
MIN_CAPACITY = 1
DEFAULT_K = 5


class CacheEngine:
    """One record store plus one vector index bound to the same dimension."""

    def __init__(
        self,
        store: RecordStore,
        dimension: int,
        default_capacity: int = DEFAULT_CAPACITY,
        growth_increment: int = DEFAULT_GROWTH_INCREMENT,
        hnsw_m: int = DEFAULT_M,
        hnsw_ef_construction: int = DEFAULT_EF_CONSTRUCTION,
        hnsw_ef_search: int = DEFAULT_EF_SEARCH,
    ) -> None:
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self._store = store
        self._dimension = dimension
        self._default_capacity = default_capacity
        self._growth_increment = growth_increment
        self._hnsw_m = hnsw_m
        self._hnsw_ef_construction = hnsw_ef_construction
        self._hnsw_ef_search = hnsw_ef_search

        self._index = self._new_index()
        self._state = CacheState.EMPTY
        self._next_id = 0
        # Serializes id assignment, writes, index mutation, reloads and clear
        self._lock = asyncio.Lock()

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def next_id(self) -> int:
        return self._next_id

    @property
    def record_store(self) -> RecordStore:
        return self._store

    @property
    def index(self) -> VectorIndex:
        return self._index

    def _new_index(self) -> VectorIndex:
        return VectorIndex(
            self._dimension,
            growth_increment=self._growth_increment,
            m=self._hnsw_m,
            ef_construction=self._hnsw_ef_construction,
            ef_search=self._hnsw_ef_search,
        )

    def _check_dimension(self, embedding: Sequence[float], operation: str) -> None:
        if len(embedding) != self._dimension:
            raise DimensionMismatch(self._dimension, len(embedding), operation=operation)

    def _validate_loaded(self, record: EmbeddingRecord) -> None:
        if not record.embedding:
            raise CorruptRecord(f"Record {record.id} has an empty embedding", record_id=record.id)
        if record.dimension != self._dimension:
            raise CorruptRecord(
                f"Embedding size mismatch. Expected {self._dimension}, but got {record.dimension}.",
                record_id=record.id,
            )

    def _publish_gauges(self) -> None:
        INDEX_POINTS.set(self._index.current_count())
        INDEX_CAPACITY.set(self._index.capacity())

    async def _load(self, empty_capacity: int = MIN_CAPACITY) -> None:
        """Rebuild the index from the store. Caller holds the lock."""
        self._state = CacheState.LOADING
        try:
            records = await self._store.get_all()
            index = self._new_index()
            if records:
                records.sort(key=lambda r: r.id)
                for record in records:
                    self._validate_loaded(record)
                index.initialize(len(records))
                for record in records:
                    try:
                        index.insert(record.embedding, record.id)
                    except DuplicateRecordId as e:
                        raise CorruptRecord(
                            f"Record id {record.id} is stored more than once",
                            record_id=record.id,
                        ) from e
                self._next_id = max(self._next_id, records[-1].id + 1)
            else:
                index.initialize(empty_capacity)
        except Exception:
            self._state = CacheState.EMPTY
            raise

        self._index = index
        self._state = CacheState.READY
        self._publish_gauges()
        logger.info(
            "cache_index_loaded",
            collection=self._store.collection,
            records=len(records),
            next_id=self._next_id,
        )

    async def initialize(self) -> None:
        """Load every stored record and build a fresh index from them."""
        async with self._lock:
            await self._load()

    async def store(self, query: str, embedding: Sequence[float], response: str) -> EmbeddingRecord:
        """Persist a new question/answer pair and index its embedding.

        Raises DimensionMismatch before anything is written.
        """
        self._check_dimension(embedding, "store")

        async with self._lock:
            if self._state is not CacheState.READY:
                await self._load(empty_capacity=self._default_capacity)

            record_id = self._next_id
            record = EmbeddingRecord(id=record_id, query=query, embedding=list(embedding), response=response)
            await self._store.put(record_id, record)
            self._next_id = record_id + 1
            # Not rolled back if this fails; the next load re-derives the index
            self._index.insert(record.embedding, record_id)
            self._publish_gauges()

        logger.debug("cache_store", collection=self._store.collection, record_id=record_id)
        return record

    async def _nearest(self, embedding: Sequence[float], k: int) -> list[int]:
        async with self._lock:
            if self._state is not CacheState.READY:
                await self._load()
            return [neighbor.id for neighbor in self._index.search(embedding, k)]

    async def _hydrate(self, ids: list[int]) -> list[EmbeddingRecord]:
        found = {record.id: record for record in await self._store.get_many(ids)}
        return [found[record_id] for record_id in ids if record_id in found]

    async def search_similar(self, embedding: Sequence[float], k: int = DEFAULT_K) -> list[EmbeddingRecord]:
        """Records for the approximate k nearest neighbours, most similar first.

        Loads the index first when this process has not built one yet.
        When the store no longer holds some of the returned ids (deleted,
        or the collection expired), the index is rebuilt from the store
        and the search runs once more; ids still missing are skipped.
        """
        self._check_dimension(embedding, "search")
        if k <= 0:
            raise ValueError(f"k must be positive, got {k}")

        ids = await self._nearest(embedding, k)
        if not ids:
            logger.debug("cache_search_empty", collection=self._store.collection)
            return []

        records = await self._hydrate(ids)
        if len(records) == len(ids):
            return records

        logger.info(
            "cache_index_stale",
            collection=self._store.collection,
            requested=len(ids),
            found=len(records),
        )
        async with self._lock:
            await self._load()

        ids = await self._nearest(embedding, k)
        records = await self._hydrate(ids) if ids else []
        if len(records) < len(ids):
            logger.debug(
                "cache_search_dropped_stale",
                collection=self._store.collection,
                requested=len(ids),
                found=len(records),
            )
        return records

    async def clear(self) -> None:
        """Drop every record and start over with an unbuilt index and id 0."""
        async with self._lock:
            await self._store.clear()
            self._index = self._new_index()
            self._state = CacheState.EMPTY
            self._next_id = 0
            self._publish_gauges()
        logger.info("cache_cleared", collection=self._store.collection)

    async def close(self) -> None:
        await self._store.close()
