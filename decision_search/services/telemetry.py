"""Search query telemetry.

Writes one ``search_queries`` row per orchestrated search. Logging is
best-effort: any failure (identity resolution included) is logged and the
call returns None. Read helpers power the recent-queries list and the
performance dashboard; those propagate errors.
"""

import logging
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from decision_search.models.search_queries import SearchQuery
from decision_search.search.schemas import (
    DailyPerformance,
    PerformanceMetrics,
    SearchQueryLogEntry,
    SearchRequest,
    TopSearch,
)
from decision_search.services.identity import IdentityResolver, resolve_from_context
from decision_search.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

TOP_SEARCHES_LIMIT = 10


class QueryTelemetryLogger:
    """Records search calls and answers analytics over the recorded log."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        identity_resolver: IdentityResolver = resolve_from_context,
        enabled: bool = True,
        slow_query_threshold_ms: int = 3000,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._resolve_identity = identity_resolver
        self.enabled = enabled
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self._clock = clock

    async def log(
        self,
        request: SearchRequest,
        result_count: int,
        response_time_ms: int,
        cache_hit: bool,
    ) -> uuid.UUID | None:
        """Record one search call. Returns the new row id, or None if skipped."""
        if not self.enabled:
            return None
        try:
            user_id = await self._resolve_identity()
            record = SearchQuery(
                id=uuid.uuid4(),
                user_id=user_id,
                query_text=request.query,
                filters=request.filters.as_dict() if request.filters else {},
                result_count=result_count,
                response_time_ms=response_time_ms,
                cache_hit=cache_hit,
                created_at=self._clock(),
            )
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
            return record.id
        except Exception as e:
            logger.warning("Search query logging skipped: %s", str(e)[:100])
            return None

    async def recent(self, limit: int = 10) -> list[SearchQueryLogEntry]:
        """Most recent rows for the current caller, newest first."""
        user_id = await self._resolve_identity()
        if not user_id:
            return []

        stmt = (
            select(SearchQuery)
            .where(SearchQuery.user_id == user_id)
            .order_by(SearchQuery.created_at.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [SearchQueryLogEntry.model_validate(row) for row in rows]

    async def _all_queries(self, since: datetime | None = None) -> list[SearchQuery]:
        stmt = select(SearchQuery).order_by(SearchQuery.created_at.desc())
        if since is not None:
            stmt = stmt.where(SearchQuery.created_at >= since)
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def performance_metrics(self) -> PerformanceMetrics:
        """Aggregate latency, hit rate and popular searches over the whole log."""
        queries = await self._all_queries()
        total = len(queries)
        if not total:
            return PerformanceMetrics()

        last_24h = self._clock() - timedelta(hours=24)
        cache_hits = sum(1 for q in queries if q.cache_hit)
        total_time = sum(q.response_time_ms or 0 for q in queries)

        by_query: dict[str, list[int]] = defaultdict(list)
        for q in queries:
            by_query[q.query_text.strip().lower()].append(q.response_time_ms or 0)

        top = sorted(by_query.items(), key=lambda item: len(item[1]), reverse=True)
        return PerformanceMetrics(
            average_response_time=round(total_time / total),
            cache_hit_rate=round(cache_hits / total * 100, 2),
            total_queries=total,
            queries_last_24h=sum(1 for q in queries if ensure_utc(q.created_at) >= last_24h),
            slow_queries=sum(
                1 for q in queries if (q.response_time_ms or 0) > self.slow_query_threshold_ms
            ),
            top_searches=[
                TopSearch(query=text, count=len(times), avg_response_time=sum(times) / len(times))
                for text, times in top[:TOP_SEARCHES_LIMIT]
            ],
        )

    async def performance_over_time(self, days: int = 7) -> list[DailyPerformance]:
        """Per-day query count, latency and hit rate for the last ``days`` days."""
        queries = await self._all_queries(since=self._clock() - timedelta(days=days))

        daily: dict[str, dict[str, int]] = defaultdict(lambda: {"count": 0, "time": 0, "hits": 0})
        for q in queries:
            bucket = daily[ensure_utc(q.created_at).date().isoformat()]
            bucket["count"] += 1
            bucket["time"] += q.response_time_ms or 0
            bucket["hits"] += 1 if q.cache_hit else 0

        return [
            DailyPerformance(
                day=day,
                count=stats["count"],
                avg_response_time=stats["time"] / stats["count"],
                cache_hit_rate=stats["hits"] / stats["count"] * 100,
            )
            for day, stats in sorted(daily.items())
        ]
