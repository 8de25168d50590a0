"""Redis-backed cache store.

Layout (``ns`` defaults to ``search_cache``):
  ns:entry:<key>   JSON-encoded entry without its hit counter
  ns:hits          hash of key → hit count (HINCRBY gives an atomic increment)
  ns:keys          set of every stored key, scanned by sweep and stats

Entries carry no native Redis TTL: expiry is lazy like the other backends,
so expired entries stay visible to stats until swept.
"""

import logging
from collections.abc import Callable
from datetime import datetime

import redis.asyncio as aioredis

from decision_search.search.schemas import CacheEntry, CacheStats
from decision_search.services.cache import CacheStore, summarize
from decision_search.utils.time import utcnow

logger = logging.getLogger(__name__)


class RedisCacheStore(CacheStore):
    backend = "redis"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        client: aioredis.Redis | None = None,
        namespace: str = "search_cache",
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(clock)
        self._redis_url = redis_url
        self._redis = client
        self._ns = namespace

    async def connect(self) -> bool:
        """Connect to Redis. Returns True on success."""
        try:
            self._redis = aioredis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
            )
            await self._redis.ping()
            return True
        except Exception as e:
            logger.warning("Redis connection failed: %s", str(e)[:100])
            self._redis = None
            return False

    async def disconnect(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    @property
    def _client(self) -> aioredis.Redis:
        if self._redis is None:
            raise RuntimeError("Redis not connected")
        return self._redis

    def _entry_key(self, key: str) -> str:
        return f"{self._ns}:entry:{key}"

    @property
    def _hits_key(self) -> str:
        return f"{self._ns}:hits"

    @property
    def _index_key(self) -> str:
        return f"{self._ns}:keys"

    async def _fetch(self, key: str, now: datetime) -> CacheEntry | None:
        entry = await self._fetch_any(key)
        if entry is None or entry.expires_at <= now:
            return None
        return entry

    async def _fetch_any(self, key: str) -> CacheEntry | None:
        raw = await self._client.get(self._entry_key(key))
        if not raw:
            return None
        hits = await self._client.hget(self._hits_key, key)
        entry = CacheEntry.model_validate_json(raw)
        return entry.model_copy(update={"hit_count": int(hits or 0)})

    async def _upsert(self, entry: CacheEntry) -> None:
        client = self._client
        await client.set(self._entry_key(entry.cache_key), entry.model_dump_json(exclude={"hit_count"}))
        await client.hset(self._hits_key, entry.cache_key, 0)
        await client.sadd(self._index_key, entry.cache_key)

    async def _increment(self, key: str) -> None:
        if await self._client.exists(self._entry_key(key)):
            await self._client.hincrby(self._hits_key, key, 1)

    async def _delete_expired(self, now: datetime) -> int:
        removed = 0
        for key in await self._client.smembers(self._index_key):
            entry = await self._fetch_any(key)
            if entry is None or entry.expires_at <= now:
                if await self._delete(key):
                    removed += 1
        return removed

    async def _delete(self, key: str) -> bool:
        client = self._client
        removed = await client.delete(self._entry_key(key))
        await client.hdel(self._hits_key, key)
        await client.srem(self._index_key, key)
        return bool(removed)

    async def _stats(self, now: datetime) -> CacheStats:
        entries = []
        for key in await self._client.smembers(self._index_key):
            entry = await self._fetch_any(key)
            if entry is not None:
                entries.append(entry)
        return summarize(entries, now)
