# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""SQL-backed RecordStore (PostgreSQL via asyncpg, SQLite via aiosqlite).

Tables:
- response_cache_records: (collection, id) -> record JSON payload
- response_cache_collections: collection -> expires_at (epoch millis)

Expiry is collection-wide, like the Redis backend: every write pushes
expires_at forward, and a read that finds the collection expired deletes
it first and reads as empty.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Iterable

import structlog
from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from .models import EmbeddingRecord, now_millis
from .record_store import DEFAULT_COLLECTION_PREFIX, collection_name

logger = structlog.get_logger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS response_cache_records (
        collection VARCHAR(128) NOT NULL,
        id BIGINT NOT NULL,
        payload TEXT NOT NULL,
        PRIMARY KEY (collection, id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS response_cache_collections (
        collection VARCHAR(128) PRIMARY KEY,
        expires_at BIGINT
    )
    """,
)


def normalize_database_url(database_url: str) -> str:
    """Convert postgresql:// URLs to the asyncpg driver."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


class SqlRecordStore:
    """RecordStore persisted in a relational database through SQLAlchemy."""

    def __init__(
        self,
        engine: AsyncEngine,
        dimension: int,
        ttl_seconds: int | None = None,
        prefix: str = DEFAULT_COLLECTION_PREFIX,
    ) -> None:
        self._engine = engine
        self._session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self._collection = collection_name(prefix, dimension)
        self._ttl_seconds = ttl_seconds
        self._schema_ready = False

    @classmethod
    def from_url(
        cls,
        database_url: str,
        dimension: int,
        ttl_seconds: int | None = None,
        prefix: str = DEFAULT_COLLECTION_PREFIX,
    ) -> "SqlRecordStore":
        engine = create_async_engine(
            normalize_database_url(database_url),
            echo=False,
            poolclass=NullPool,
        )
        return cls(engine, dimension, ttl_seconds=ttl_seconds, prefix=prefix)

    @property
    def collection(self) -> str:
        return self._collection

    async def ensure_schema(self) -> None:
        """Create the record tables if they do not exist yet."""
        if self._schema_ready:
            return
        async with self._engine.begin() as conn:
            for statement in _SCHEMA:
                await conn.execute(text(statement))
        self._schema_ready = True

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        await self.ensure_schema()
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _drop_if_expired(self, session: AsyncSession) -> None:
        result = await session.execute(
            text("SELECT expires_at FROM response_cache_collections WHERE collection = :collection"),
            {"collection": self._collection},
        )
        row = result.fetchone()
        if row is None or row.expires_at is None or row.expires_at > now_millis():
            return
        await self._delete_collection(session)
        logger.info("record_store_expired", collection=self._collection)

    async def _delete_collection(self, session: AsyncSession) -> int:
        result = await session.execute(
            text("DELETE FROM response_cache_records WHERE collection = :collection"),
            {"collection": self._collection},
        )
        await session.execute(
            text("DELETE FROM response_cache_collections WHERE collection = :collection"),
            {"collection": self._collection},
        )
        return result.rowcount

    async def put(self, record_id: int, record: EmbeddingRecord) -> None:
        """Upsert a record; refresh the collection expiry when a TTL is set."""
        async with self._session() as session:
            await self._drop_if_expired(session)
            await session.execute(
                text("""
                    INSERT INTO response_cache_records (collection, id, payload)
                    VALUES (:collection, :id, :payload)
                    ON CONFLICT (collection, id)
                    DO UPDATE SET payload = EXCLUDED.payload
                """),
                {"collection": self._collection, "id": record_id, "payload": record.to_json()},
            )
            if self._ttl_seconds:
                await session.execute(
                    text("""
                        INSERT INTO response_cache_collections (collection, expires_at)
                        VALUES (:collection, :expires_at)
                        ON CONFLICT (collection)
                        DO UPDATE SET expires_at = EXCLUDED.expires_at
                    """),
                    {
                        "collection": self._collection,
                        "expires_at": now_millis() + self._ttl_seconds * 1000,
                    },
                )

    async def get_all(self) -> list[EmbeddingRecord]:
        async with self._session() as session:
            await self._drop_if_expired(session)
            result = await session.execute(
                text("""
                    SELECT id, payload FROM response_cache_records
                    WHERE collection = :collection
                    ORDER BY id
                """),
                {"collection": self._collection},
            )
            rows = result.fetchall()
        records = [EmbeddingRecord.from_json(row.payload, record_id=row.id) for row in rows]
        logger.debug("record_store_loaded", collection=self._collection, count=len(records))
        return records

    async def get_many(self, record_ids: Iterable[int]) -> list[EmbeddingRecord]:
        """Batch lookup in request order; ids without a record are skipped."""
        ids = [int(record_id) for record_id in record_ids]
        if not ids:
            return []
        query = text("""
            SELECT id, payload FROM response_cache_records
            WHERE collection = :collection AND id IN :ids
        """).bindparams(bindparam("ids", expanding=True))
        async with self._session() as session:
            await self._drop_if_expired(session)
            result = await session.execute(query, {"collection": self._collection, "ids": ids})
            payloads = {row.id: row.payload for row in result.fetchall()}
        return [
            EmbeddingRecord.from_json(payloads[record_id], record_id=record_id)
            for record_id in ids
            if record_id in payloads
        ]

    async def clear(self) -> None:
        async with self._session() as session:
            deleted = await self._delete_collection(session)
        logger.info("record_store_cleared", collection=self._collection, deleted=deleted)

    async def purge_expired(self) -> int:
        """Delete every expired collection (any dimension). Returns records deleted."""
        now = now_millis()
        async with self._session() as session:
            result = await session.execute(
                text("""
                    DELETE FROM response_cache_records
                    WHERE collection IN (
                        SELECT collection FROM response_cache_collections
                        WHERE expires_at IS NOT NULL AND expires_at <= :now
                    )
                """),
                {"now": now},
            )
            await session.execute(
                text("""
                    DELETE FROM response_cache_collections
                    WHERE expires_at IS NOT NULL AND expires_at <= :now
                """),
                {"now": now},
            )
        count = result.rowcount
        if count > 0:
            logger.info("record_store_purged", deleted=count)
        return count

    async def close(self) -> None:
        await self._engine.dispose()
