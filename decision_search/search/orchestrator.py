"""Search orchestrator — serves searches from cache or recomputes them.

Flow per call:
  - derive the cache key from the normalized request
  - read the cache; on hit bump the hit counter, log telemetry, return
  - on miss run the decision query, log telemetry, cache the result, return

Only the decision query can fail the call. Cache and telemetry are
best-effort: a cache outage means every search recomputes, a telemetry
outage means no usage history.

Concurrent identical misses each run the query and each write the cache;
the last upsert wins.
"""

import logging
import time

from decision_search.search.schemas import (
    CacheStats,
    DailyPerformance,
    PerformanceMetrics,
    SearchQueryLogEntry,
    SearchRequest,
    SearchResult,
)
from decision_search.services.cache import DEFAULT_TTL_MINUTES, CacheStore
from decision_search.services.cache_key import derive_key
from decision_search.services.decision_store import DecisionQueryExecutor
from decision_search.services.telemetry import QueryTelemetryLogger

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return round((time.monotonic() - start) * 1000)


class SearchOrchestrator:
    """Cache-aside search over an injected cache store and query executor."""

    def __init__(
        self,
        cache_store: CacheStore,
        executor: DecisionQueryExecutor,
        telemetry: QueryTelemetryLogger,
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
    ):
        self.cache_store = cache_store
        self.executor = executor
        self.telemetry = telemetry
        self.ttl_minutes = ttl_minutes

    async def search(self, request: SearchRequest) -> SearchResult:
        start = time.monotonic()
        cache_key = derive_key(request)

        cached = await self.cache_store.read(cache_key)
        if cached is not None:
            await self.cache_store.increment_hit(cache_key)
            elapsed_ms = _elapsed_ms(start)
            payload = cached.payload
            await self.telemetry.log(request, len(payload.decisions), elapsed_ms, cache_hit=True)
            logger.info(
                "Search served from cache | key=%s | items=%d | %dms",
                cache_key, len(payload.decisions), elapsed_ms,
            )
            return SearchResult(
                decisions=payload.decisions,
                total=payload.total,
                cache_hit=True,
                response_time_ms=elapsed_ms,
            )

        decisions, total = await self.executor.execute(
            request.normalized_query,
            request.effective_filters,
            request.limit,
            request.offset,
        )
        elapsed_ms = _elapsed_ms(start)
        result = SearchResult(
            decisions=decisions,
            total=total,
            cache_hit=False,
            response_time_ms=elapsed_ms,
        )

        query_id = await self.telemetry.log(request, total, elapsed_ms, cache_hit=False)
        await self.cache_store.write(cache_key, result, query_id, ttl_minutes=self.ttl_minutes)
        logger.info(
            "Search computed | key=%s | items=%d | total=%d | %dms",
            cache_key, len(decisions), total, elapsed_ms,
        )
        return result

    # ═══════════════ ADMIN / DIAGNOSTICS ═══════════════

    async def clear_cache(self, cache_key: str | None = None) -> int:
        """Clear one entry, or sweep every expired entry when no key is given.

        Returns the number of entries removed.
        """
        if cache_key:
            return 1 if await self.cache_store.clear_one(cache_key) else 0
        return await self.cache_store.sweep_expired()

    async def get_cache_stats(self) -> CacheStats:
        return await self.cache_store.stats()

    async def get_recent_queries(self, limit: int = 10) -> list[SearchQueryLogEntry]:
        return await self.telemetry.recent(limit)

    async def get_performance_metrics(self) -> PerformanceMetrics:
        return await self.telemetry.performance_metrics()

    async def get_performance_over_time(self, days: int = 7) -> list[DailyPerformance]:
        return await self.telemetry.performance_over_time(days)
