"""Search result cache stores.

Every backend shares the same policy, implemented once in :class:`CacheStore`:

  - read:      lazy expiry — an entry is returned only while ``expires_at > now``
  - write:     upsert keyed by cache key, hit counter reset to 0
  - increment: +1 on the hit counter, atomic where the backend allows it
  - sweep:     on-demand delete of everything with ``expires_at <= now``

read / write / increment are best-effort: backend errors are logged and the
call degrades to a miss or a no-op. Administrative calls (sweep, clear, stats)
propagate errors to the caller.

Backends:
  - MemoryCacheStore    in-process dict (tests, local development)
  - DatabaseCacheStore  ``cached_results`` table via SQLAlchemy async
  - RedisCacheStore     see ``decision_search.services.redis_cache``
"""

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from decision_search.models.cached_results import CachedResult
from decision_search.search.schemas import CacheEntry, CacheStats, SearchPayload
from decision_search.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 30

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def payload_data(payload: SearchPayload) -> dict[str, Any]:
    """Serialize only the cacheable fields; per-call metadata is dropped."""
    return payload.model_dump(mode="json", by_alias=True, include={"decisions", "total"})


def build_stats(total: int, active: int, total_hits: int) -> CacheStats:
    average = round(total_hits / total, 2) if total else 0
    return CacheStats(
        total_entries=total,
        active_entries=active,
        expired_entries=total - active,
        total_hits=total_hits,
        average_hit_count=average,
    )


def summarize(entries: Iterable[CacheEntry], now: datetime) -> CacheStats:
    total = active = hits = 0
    for entry in entries:
        total += 1
        hits += entry.hit_count
        if entry.expires_at > now:
            active += 1
    return build_stats(total, active, hits)


class CacheStore:
    """Cache policy on top of a handful of backend primitives."""

    backend = "abstract"

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    # ── best-effort operations ──

    async def read(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key``, or None on miss / expiry / error.

        An entry whose payload no longer decodes counts as a miss.
        """
        try:
            entry = await self._fetch(key, self._clock())
            if entry is not None:
                SearchPayload.model_validate(entry.result_data)
        except Exception as e:
            logger.warning("Cache read failed | backend=%s | key=%s | %s", self.backend, key, str(e)[:100])
            return None
        if entry is not None:
            logger.info("Cache HIT | backend=%s | key=%s | hits=%d", self.backend, key, entry.hit_count)
        return entry

    async def write(
        self,
        key: str,
        payload: SearchPayload,
        search_query_id: uuid.UUID | None = None,
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
    ) -> None:
        """Upsert ``payload`` under ``key`` with a fresh expiry and zero hits."""
        now = self._clock()
        entry = CacheEntry(
            cache_key=key,
            result_data=payload_data(payload),
            search_query_id=search_query_id,
            expires_at=now + timedelta(minutes=ttl_minutes),
            created_at=now,
            hit_count=0,
        )
        try:
            await self._upsert(entry)
        except Exception as e:
            logger.warning("Cache write failed | backend=%s | key=%s | %s", self.backend, key, str(e)[:100])
            return
        logger.info("Cache SET | backend=%s | key=%s | ttl=%dm", self.backend, key, ttl_minutes)

    async def increment_hit(self, key: str) -> None:
        try:
            await self._increment(key)
        except Exception as e:
            logger.warning("Cache hit increment failed | backend=%s | key=%s | %s", self.backend, key, str(e)[:100])

    # ── administrative operations ──

    async def sweep_expired(self) -> int:
        """Delete every entry already past expiry. Returns the number removed."""
        removed = await self._delete_expired(self._clock())
        logger.info("Cache sweep | backend=%s | removed=%d", self.backend, removed)
        return removed

    async def clear_one(self, key: str) -> bool:
        removed = await self._delete(key)
        logger.info("Cache clear | backend=%s | key=%s | removed=%s", self.backend, key, removed)
        return removed

    async def stats(self) -> CacheStats:
        return await self._stats(self._clock())

    # ── backend primitives ──

    async def _fetch(self, key: str, now: datetime) -> CacheEntry | None:
        raise NotImplementedError

    async def _fetch_any(self, key: str) -> CacheEntry | None:
        """Entry for ``key`` regardless of expiry."""
        raise NotImplementedError

    async def _upsert(self, entry: CacheEntry) -> None:
        raise NotImplementedError

    async def _increment(self, key: str) -> None:
        """Read-then-write fallback for backends without an atomic increment.

        Concurrent hits may lose increments; the counter is a popularity
        metric only.
        """
        entry = await self._fetch_any(key)
        if entry is not None:
            await self._set_hit_count(key, entry.hit_count + 1)

    async def _set_hit_count(self, key: str, value: int) -> None:
        raise NotImplementedError

    async def _delete_expired(self, now: datetime) -> int:
        raise NotImplementedError

    async def _delete(self, key: str) -> bool:
        raise NotImplementedError

    async def _stats(self, now: datetime) -> CacheStats:
        raise NotImplementedError


class MemoryCacheStore(CacheStore):
    """In-process store. Not shared between workers."""

    backend = "memory"

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        super().__init__(clock)
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def _fetch(self, key: str, now: datetime) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None or entry.expires_at <= now:
            return None
        return entry.model_copy()

    async def _fetch_any(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        return entry.model_copy() if entry else None

    async def _upsert(self, entry: CacheEntry) -> None:
        self._entries[entry.cache_key] = entry.model_copy()

    async def _set_hit_count(self, key: str, value: int) -> None:
        entry = self._entries.get(key)
        if entry is not None:
            self._entries[key] = entry.model_copy(update={"hit_count": value})

    async def _delete_expired(self, now: datetime) -> int:
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def _delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def _stats(self, now: datetime) -> CacheStats:
        return summarize(self._entries.values(), now)


class DatabaseCacheStore(CacheStore):
    """Store backed by the ``cached_results`` table."""

    backend = "database"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(clock)
        self._session_factory = session_factory

    @staticmethod
    def _to_entry(row: CachedResult) -> CacheEntry:
        return CacheEntry(
            cache_key=row.cache_key,
            result_data=row.result_data,
            search_query_id=row.search_query_id,
            expires_at=ensure_utc(row.expires_at),
            created_at=ensure_utc(row.created_at),
            hit_count=row.hit_count or 0,
        )

    async def _fetch(self, key: str, now: datetime) -> CacheEntry | None:
        stmt = (
            select(CachedResult)
            .where(CachedResult.cache_key == key, CachedResult.expires_at > now)
            .order_by(CachedResult.created_at.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalars().first()
        return self._to_entry(row) if row else None

    async def _fetch_any(self, key: str) -> CacheEntry | None:
        stmt = select(CachedResult).where(CachedResult.cache_key == key)
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalars().first()
        return self._to_entry(row) if row else None

    async def _upsert(self, entry: CacheEntry) -> None:
        values = {
            "cache_key": entry.cache_key,
            "search_query_id": entry.search_query_id,
            "result_data": entry.result_data,
            "expires_at": entry.expires_at,
            "created_at": entry.created_at,
            "hit_count": 0,
        }
        async with self._session_factory() as session:
            insert = _UPSERT_DIALECTS.get(session.get_bind().dialect.name)
            if insert is not None:
                stmt = insert(CachedResult).values(id=uuid.uuid4(), **values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["cache_key"],
                    set_={name: stmt.excluded[name] for name in values if name != "cache_key"},
                )
                await session.execute(stmt)
            else:
                existing = (
                    await session.execute(
                        select(CachedResult).where(CachedResult.cache_key == entry.cache_key)
                    )
                ).scalars().first()
                if existing:
                    for name, value in values.items():
                        setattr(existing, name, value)
                else:
                    session.add(CachedResult(**values))
            await session.commit()

    async def _increment(self, key: str) -> None:
        stmt = (
            update(CachedResult)
            .where(CachedResult.cache_key == key)
            .values(hit_count=CachedResult.hit_count + 1)
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def _delete_expired(self, now: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(delete(CachedResult).where(CachedResult.expires_at <= now))
            removed = result.rowcount or 0
            await session.commit()
        return removed

    async def _delete(self, key: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(delete(CachedResult).where(CachedResult.cache_key == key))
            removed = bool(result.rowcount)
            await session.commit()
        return removed

    async def _stats(self, now: datetime) -> CacheStats:
        stmt = select(
            func.count(CachedResult.id),
            func.coalesce(func.sum(case((CachedResult.expires_at > now, 1), else_=0)), 0),
            func.coalesce(func.sum(CachedResult.hit_count), 0),
        )
        async with self._session_factory() as session:
            total, active, hits = (await session.execute(stmt)).one()
        return build_stats(int(total), int(active), int(hits))
