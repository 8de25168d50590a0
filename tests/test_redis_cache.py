"""Tests for the Redis cache store with an in-memory stand-in for the client."""

from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError, TimeoutError

from decision_search.services.redis_cache import RedisCacheStore


class FakeRedis:
    """The handful of async Redis commands the store uses."""

    def __init__(self):
        self.strings: dict[str, str] = {}
        self.hashes: dict[str, dict[str, int]] = {}
        self.sets: dict[str, set[str]] = {}

    async def get(self, key):
        return self.strings.get(key)

    async def set(self, key, value):
        self.strings[key] = value
        return True

    async def delete(self, *keys):
        return sum(1 for k in keys if self.strings.pop(k, None) is not None)

    async def exists(self, key):
        return int(key in self.strings)

    async def hget(self, name, field):
        value = self.hashes.get(name, {}).get(field)
        return None if value is None else str(value)

    async def hset(self, name, field, value):
        self.hashes.setdefault(name, {})[field] = int(value)
        return 1

    async def hincrby(self, name, field, amount=1):
        bucket = self.hashes.setdefault(name, {})
        bucket[field] = bucket.get(field, 0) + amount
        return bucket[field]

    async def hdel(self, name, *fields):
        bucket = self.hashes.get(name, {})
        return sum(1 for f in fields if bucket.pop(f, None) is not None)

    async def sadd(self, name, *members):
        self.sets.setdefault(name, set()).update(members)
        return len(members)

    async def srem(self, name, *members):
        bucket = self.sets.get(name, set())
        removed = len(bucket.intersection(members))
        bucket.difference_update(members)
        return removed

    async def smembers(self, name):
        return set(self.sets.get(name, set()))


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis, clock):
    return RedisCacheStore(client=fake_redis, clock=clock)


class TestRedisCacheStore:
    @pytest.mark.asyncio
    async def test_round_trip(self, store, sample_payload):
        await store.write("search_abc", sample_payload)
        entry = await store.read("search_abc")
        assert entry.payload == sample_payload
        assert entry.hit_count == 0

    @pytest.mark.asyncio
    async def test_key_layout(self, store, fake_redis, sample_payload):
        await store.write("search_abc", sample_payload)
        assert "search_cache:entry:search_abc" in fake_redis.strings
        assert fake_redis.hashes["search_cache:hits"]["search_abc"] == 0
        assert "search_abc" in fake_redis.sets["search_cache:keys"]

    @pytest.mark.asyncio
    async def test_lazy_expiry(self, store, clock, sample_payload):
        await store.write("search_abc", sample_payload, ttl_minutes=30)
        clock.advance(minutes=30)
        assert await store.read("search_abc") is None
        # still stored until swept
        assert (await store.stats()).expired_entries == 1

    @pytest.mark.asyncio
    async def test_hits_and_upsert_reset(self, store, sample_payload):
        await store.write("search_abc", sample_payload)
        for _ in range(3):
            await store.increment_hit("search_abc")
        assert (await store.read("search_abc")).hit_count == 3

        await store.write("search_abc", sample_payload)
        assert (await store.read("search_abc")).hit_count == 0

    @pytest.mark.asyncio
    async def test_increment_missing_key_creates_nothing(self, store, fake_redis):
        await store.increment_hit("search_missing")
        assert "search_missing" not in fake_redis.hashes.get("search_cache:hits", {})

    @pytest.mark.asyncio
    async def test_sweep_and_clear(self, store, clock, fake_redis, sample_payload):
        await store.write("search_old", sample_payload, ttl_minutes=5)
        await store.write("search_new", sample_payload, ttl_minutes=60)
        await store.write("search_other", sample_payload, ttl_minutes=60)
        clock.advance(minutes=5)

        assert await store.sweep_expired() == 1
        assert "search_old" not in fake_redis.sets["search_cache:keys"]

        assert await store.clear_one("search_other") is True
        assert await store.clear_one("search_other") is False

        stats = await store.stats()
        assert stats.total_entries == 1
        assert stats.active_entries == 1

    @pytest.mark.asyncio
    async def test_namespace(self, fake_redis, clock, sample_payload):
        store = RedisCacheStore(client=fake_redis, namespace="tenant_a", clock=clock)
        await store.write("search_abc", sample_payload)
        assert "tenant_a:entry:search_abc" in fake_redis.strings


class TestRedisFailures:
    @pytest.mark.asyncio
    async def test_connection_error_is_a_miss(self, clock):
        client = AsyncMock()
        client.get = AsyncMock(side_effect=ConnectionError("Connection refused"))
        store = RedisCacheStore(client=client, clock=clock)
        assert await store.read("search_abc") is None

    @pytest.mark.asyncio
    async def test_timeout_on_write_swallowed(self, clock, sample_payload):
        client = AsyncMock()
        client.set = AsyncMock(side_effect=TimeoutError("Operation timed out"))
        store = RedisCacheStore(client=client, clock=clock)
        await store.write("search_abc", sample_payload)
        client.hset.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_connected(self, sample_payload):
        store = RedisCacheStore()
        assert await store.read("search_abc") is None
        await store.write("search_abc", sample_payload)
        await store.increment_hit("search_abc")
        with pytest.raises(RuntimeError):
            await store.stats()

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        client = AsyncMock()
        client.ping = AsyncMock(side_effect=ConnectionError("Connection refused"))
        with patch("decision_search.services.redis_cache.aioredis.from_url", return_value=client):
            store = RedisCacheStore("redis://nowhere:6379")
            assert await store.connect() is False
        assert await store.read("search_abc") is None

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self):
        client = AsyncMock()
        with patch("decision_search.services.redis_cache.aioredis.from_url", return_value=client):
            store = RedisCacheStore("redis://localhost:6379")
            assert await store.connect() is True
        await store.disconnect()
        client.aclose.assert_awaited_once()
