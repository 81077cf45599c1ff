# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Tests for the Redis-backed record store and record decoding.

Covers:
- Collection naming per dimension
- Upsert, batch get, get all, clear
- Collection-wide TTL reset on every write
- Defensive embedding decode (index maps, JSON strings, comma strings)
- Corrupt payloads surfaced as CorruptRecord
"""

import json

import pytest
from pydantic import ValidationError

from response_cache.cache.models import EmbeddingRecord, coerce_embedding
from response_cache.cache.record_store import RecordStore, RedisRecordStore, collection_name
from response_cache.errors import CorruptRecord


def make_record(record_id: int, query: str = "q", response: str = "r") -> EmbeddingRecord:
    return EmbeddingRecord(
        id=record_id,
        query=query,
        embedding=[float(record_id), 1.0, 0.0, 0.0],
        response=response,
        timestamp=1_700_000_000_000,
    )


# =============================================================================
# Record model
# =============================================================================


class TestEmbeddingRecord:

    def test_json_round_trip_fields(self):
        record = make_record(3, query="hello", response="world")
        decoded = EmbeddingRecord.from_json(record.to_json())
        assert decoded == record

    def test_default_timestamp_is_epoch_millis(self):
        record = EmbeddingRecord(id=0, query="q", embedding=[1.0], response="r")
        assert record.timestamp > 1_600_000_000_000

    def test_negative_id_rejected(self):
        with pytest.raises(ValidationError):
            EmbeddingRecord(id=-1, query="q", embedding=[1.0], response="r")

    def test_empty_embedding_rejected(self):
        with pytest.raises(ValidationError):
            EmbeddingRecord(id=0, query="q", embedding=[], response="r")

    def test_records_are_immutable(self):
        record = make_record(0)
        with pytest.raises(ValidationError):
            record.response = "changed"


class TestCoerceEmbedding:

    def test_list_passthrough(self):
        assert coerce_embedding([1, 2.5, -3]) == [1.0, 2.5, -3.0]

    def test_index_keyed_mapping(self):
        assert coerce_embedding({"2": 0.3, "0": 0.1, "1": 0.2}) == [0.1, 0.2, 0.3]

    def test_json_string(self):
        assert coerce_embedding("[0.5, 0.25]") == [0.5, 0.25]

    def test_json_object_string(self):
        assert coerce_embedding('{"1": 2, "0": 1}') == [1.0, 2.0]

    def test_comma_string(self):
        assert coerce_embedding("0.1, 0.2,0.3") == [0.1, 0.2, 0.3]

    def test_non_numeric_rejected(self):
        with pytest.raises(ValueError):
            coerce_embedding(["a", "b"])

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError):
            coerce_embedding([1.0, float("nan")])

    def test_scalar_rejected(self):
        with pytest.raises(ValueError):
            coerce_embedding(42)

    def test_bad_mapping_keys_rejected(self):
        with pytest.raises(ValueError):
            coerce_embedding({"x": 1.0})


# =============================================================================
# RedisRecordStore
# =============================================================================


class TestRedisRecordStore:

    def test_satisfies_protocol(self, record_store):
        assert isinstance(record_store, RecordStore)

    def test_collection_scoped_by_dimension(self, redis_client):
        assert RedisRecordStore(redis_client, dimension=384).collection == "embeddings:384"
        assert RedisRecordStore(redis_client, dimension=1536, prefix="qa").collection == "qa:1536"
        assert collection_name("embeddings", 4) != collection_name("embeddings", 8)

    @pytest.mark.asyncio
    async def test_put_and_get_many(self, record_store, redis_client):
        await record_store.put(0, make_record(0))
        await record_store.put(1, make_record(1))

        assert set(redis_client.hashes["embeddings:4"]) == {"0", "1"}
        records = await record_store.get_many([1, 0])
        assert [r.id for r in records] == [1, 0]

    @pytest.mark.asyncio
    async def test_put_is_upsert(self, record_store):
        await record_store.put(0, make_record(0, response="first"))
        await record_store.put(0, make_record(0, response="second"))
        records = await record_store.get_all()
        assert len(records) == 1
        assert records[0].response == "second"

    @pytest.mark.asyncio
    async def test_get_many_skips_missing(self, record_store):
        await record_store.put(2, make_record(2))
        records = await record_store.get_many([5, 2, 9])
        assert [r.id for r in records] == [2]

    @pytest.mark.asyncio
    async def test_get_many_empty_ids(self, record_store):
        assert await record_store.get_many([]) == []

    @pytest.mark.asyncio
    async def test_get_all_empty(self, record_store):
        assert await record_store.get_all() == []

    @pytest.mark.asyncio
    async def test_clear_removes_collection(self, record_store, redis_client):
        await record_store.put(0, make_record(0))
        await record_store.clear()
        assert "embeddings:4" not in redis_client.hashes
        assert await record_store.get_all() == []

    @pytest.mark.asyncio
    async def test_no_ttl_no_expire(self, record_store, redis_client):
        await record_store.put(0, make_record(0))
        assert redis_client.expire_calls == []

    @pytest.mark.asyncio
    async def test_ttl_reset_on_every_write(self, redis_client):
        store = RedisRecordStore(redis_client, dimension=4, ttl_seconds=86400)
        await store.put(0, make_record(0))
        await store.put(1, make_record(1))
        assert redis_client.expire_calls == [("embeddings:4", 86400), ("embeddings:4", 86400)]
        assert redis_client.expiry["embeddings:4"] == 86400

    @pytest.mark.asyncio
    async def test_expired_collection_reads_empty(self, redis_client):
        store = RedisRecordStore(redis_client, dimension=4, ttl_seconds=1)
        await store.put(0, make_record(0))
        redis_client.expire_now("embeddings:4")
        assert await store.get_all() == []
        assert await store.get_many([0]) == []

    @pytest.mark.asyncio
    async def test_get_all_normalizes_legacy_embeddings(self, record_store, redis_client):
        legacy = {
            "id": 4,
            "query": "legacy",
            "embedding": {"0": 0.5, "1": 0.5, "2": 0.5, "3": 0.5},
            "response": "old answer",
            "timestamp": 1,
        }
        redis_client.hashes["embeddings:4"] = {"4": json.dumps(legacy)}
        records = await record_store.get_all()
        assert records[0].embedding == [0.5, 0.5, 0.5, 0.5]

    @pytest.mark.asyncio
    async def test_get_all_corrupt_payload(self, record_store, redis_client):
        redis_client.hashes["embeddings:4"] = {"3": "{not json"}
        with pytest.raises(CorruptRecord) as exc_info:
            await record_store.get_all()
        assert exc_info.value.record_id == "3"

    @pytest.mark.asyncio
    async def test_get_all_missing_embedding(self, record_store, redis_client):
        payload = {"id": 1, "query": "q", "response": "r", "timestamp": 1}
        redis_client.hashes["embeddings:4"] = {"1": json.dumps(payload)}
        with pytest.raises(CorruptRecord):
            await record_store.get_all()

    @pytest.mark.asyncio
    async def test_close(self, record_store, redis_client):
        await record_store.close()
        assert redis_client.closed is True
