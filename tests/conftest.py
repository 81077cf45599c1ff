# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Pytest configuration and shared fixtures."""

import pytest

from response_cache.cache.engine import CacheEngine
from response_cache.cache.record_store import RedisRecordStore
from response_cache.config import clear_settings_cache


class InMemoryRedis:
    """Async stand-in for the handful of redis.asyncio hash commands the store uses."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = {}
        self.expiry: dict[str, int] = {}
        self.expire_calls: list[tuple[str, int]] = []
        self.closed = False

    async def hset(self, name: str, key: str, value: str) -> int:
        bucket = self.hashes.setdefault(name, {})
        created = key not in bucket
        bucket[key] = value
        return int(created)

    async def hmget(self, name: str, keys: list[str]) -> list[str | None]:
        bucket = self.hashes.get(name, {})
        return [bucket.get(key) for key in keys]

    async def hgetall(self, name: str) -> dict[str, str]:
        return dict(self.hashes.get(name, {}))

    async def hdel(self, name: str, *keys: str) -> int:
        bucket = self.hashes.get(name, {})
        return sum(1 for key in keys if bucket.pop(key, None) is not None)

    async def expire(self, name: str, seconds: int) -> bool:
        self.expire_calls.append((name, seconds))
        if name not in self.hashes:
            return False
        self.expiry[name] = seconds
        return True

    async def delete(self, *names: str) -> int:
        removed = 0
        for name in names:
            removed += int(self.hashes.pop(name, None) is not None)
            self.expiry.pop(name, None)
        return removed

    async def aclose(self) -> None:
        self.closed = True

    def expire_now(self, name: str) -> None:
        """Simulate Redis dropping an expired key."""
        self.hashes.pop(name, None)
        self.expiry.pop(name, None)


@pytest.fixture(autouse=True)
def reset_settings():
    """Reset settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def redis_client() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def record_store(redis_client) -> RedisRecordStore:
    return RedisRecordStore(redis_client, dimension=4)


@pytest.fixture
def engine(record_store) -> CacheEngine:
    return CacheEngine(record_store, dimension=4, default_capacity=8, growth_increment=4)
