# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Durable record storage for cached question/answer pairs.

Records live in one collection per embedding dimension so vectors of
different lengths never share storage keys. The optional TTL applies to
the whole collection and is reset on every write.
"""

from typing import Iterable, Protocol, runtime_checkable

import structlog
from redis.asyncio import Redis

from .models import EmbeddingRecord

logger = structlog.get_logger(__name__)

DEFAULT_COLLECTION_PREFIX = "embeddings"


def collection_name(prefix: str, dimension: int) -> str:
    """Storage key of the collection holding ``dimension``-length vectors."""
    return f"{prefix}:{dimension}"


@runtime_checkable
class RecordStore(Protocol):
    """Keyed storage contract the CacheEngine rebuilds its index from."""

    @property
    def collection(self) -> str:
        ...

    async def put(self, record_id: int, record: EmbeddingRecord) -> None:
        ...

    async def get_all(self) -> list[EmbeddingRecord]:
        ...

    async def get_many(self, record_ids: Iterable[int]) -> list[EmbeddingRecord]:
        ...

    async def clear(self) -> None:
        ...

    async def close(self) -> None:
        ...


class RedisRecordStore:
    """RecordStore backed by one Redis hash per collection.

    Hash fields are decimal record ids, values are record JSON documents.
    """

    def __init__(
        self,
        client: Redis,
        dimension: int,
        ttl_seconds: int | None = None,
        prefix: str = DEFAULT_COLLECTION_PREFIX,
    ) -> None:
        self._client = client
        self._collection = collection_name(prefix, dimension)
        self._ttl_seconds = ttl_seconds

    @classmethod
    def from_url(
        cls,
        url: str,
        dimension: int,
        ttl_seconds: int | None = None,
        prefix: str = DEFAULT_COLLECTION_PREFIX,
    ) -> "RedisRecordStore":
        """Build a store with its own Redis connection pool."""
        client = Redis.from_url(url, decode_responses=True)
        return cls(client, dimension, ttl_seconds=ttl_seconds, prefix=prefix)

    @property
    def collection(self) -> str:
        return self._collection

    async def put(self, record_id: int, record: EmbeddingRecord) -> None:
        """Upsert a record; refresh the collection expiry when a TTL is set."""
        await self._client.hset(self._collection, str(record_id), record.to_json())
        if self._ttl_seconds:
            await self._client.expire(self._collection, self._ttl_seconds)

    async def get_all(self) -> list[EmbeddingRecord]:
        """Every record in the collection, decoded and normalized."""
        data = await self._client.hgetall(self._collection)
        records = [EmbeddingRecord.from_json(payload, record_id=key) for key, payload in data.items()]
        logger.debug("record_store_loaded", collection=self._collection, count=len(records))
        return records

    async def get_many(self, record_ids: Iterable[int]) -> list[EmbeddingRecord]:
        """Batch lookup in request order; ids without a record are skipped."""
        keys = [str(record_id) for record_id in record_ids]
        if not keys:
            return []
        payloads = await self._client.hmget(self._collection, keys)
        return [
            EmbeddingRecord.from_json(payload, record_id=key)
            for key, payload in zip(keys, payloads)
            if payload is not None
        ]

    async def clear(self) -> None:
        """Delete the whole collection."""
        await self._client.delete(self._collection)
        logger.info("record_store_cleared", collection=self._collection)

    async def close(self) -> None:
        await self._client.aclose()
