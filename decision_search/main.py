"""Decision Search — FastAPI application entry point.

Exposes cached decision search plus cache administration and search
analytics. The caller is identified by the ``X-User-Id`` header (optional —
guests are allowed).
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from decision_search import __version__
from decision_search.config import Settings, settings
from decision_search.search.orchestrator import SearchOrchestrator
from decision_search.search.schemas import SearchRequest
from decision_search.services.cache import CacheStore, DatabaseCacheStore, MemoryCacheStore
from decision_search.services.decision_store import SqlDecisionQueryExecutor
from decision_search.services.identity import bind_user, current_user_id
from decision_search.services.redis_cache import RedisCacheStore
from decision_search.services.telemetry import QueryTelemetryLogger

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger("decision_search")


async def build_cache_store(config: Settings, session_factory) -> CacheStore:
    """Pick the configured backend. Redis falls back to memory if unreachable."""
    if config.cache_backend == "redis":
        store = RedisCacheStore(config.redis_url)
        if await store.connect():
            logger.info("Cache backend: redis")
            return store
        logger.warning("Redis unavailable — using in-memory cache")
        return MemoryCacheStore()
    if config.cache_backend == "memory":
        logger.info("Cache backend: memory")
        return MemoryCacheStore()
    logger.info("Cache backend: database")
    return DatabaseCacheStore(session_factory)


def build_orchestrator(config: Settings, session_factory, cache_store: CacheStore) -> SearchOrchestrator:
    return SearchOrchestrator(
        cache_store=cache_store,
        executor=SqlDecisionQueryExecutor(session_factory),
        telemetry=QueryTelemetryLogger(
            session_factory,
            enabled=config.telemetry_enabled,
            slow_query_threshold_ms=config.slow_query_threshold_ms,
        ),
        ttl_minutes=config.cache_ttl_minutes,
    )


# ═══════════════ LIFESPAN ═══════════════

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Decision search starting | cache_backend=%s", settings.cache_backend)

    # Initialize database (graceful degradation if unavailable)
    from decision_search.database import async_session_factory, close_db, init_db
    db_ok = await init_db()
    logger.info("Database: %s", "connected" if db_ok else "unavailable (continuing without)")

    cache_store = await build_cache_store(settings, async_session_factory)
    app.state.orchestrator = build_orchestrator(settings, async_session_factory, cache_store)

    yield

    if isinstance(cache_store, RedisCacheStore):
        await cache_store.disconnect()
    await close_db()
    logger.info("Decision search shutting down")


# ═══════════════ APP ═══════════════

app = FastAPI(
    title="Decision Search API",
    description="Decision search with a persistent result cache",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-User-Id"],
)


@app.middleware("http")
async def bind_caller(request: Request, call_next):
    token = bind_user(request.headers.get("x-user-id"))
    try:
        return await call_next(request)
    finally:
        current_user_id.reset(token)


def _orchestrator(request: Request) -> SearchOrchestrator:
    return request.app.state.orchestrator


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


# ═══════════════ ENDPOINTS ═══════════════

@app.get("/health")
async def health():
    return {"status": "ok", "cache_backend": settings.cache_backend}


@app.post("/api/search")
async def search(request: Request):
    """Search decisions, served from cache when a live entry exists."""
    try:
        body = await request.json()
    except Exception:
        return _error(400, "Invalid request body.")

    try:
        search_req = SearchRequest.model_validate(body)
    except ValidationError as e:
        return _error(400, "Invalid search request.", details=[err["msg"] for err in e.errors()])

    if search_req.limit > settings.search_max_limit:
        return _error(400, f"limit must not exceed {settings.search_max_limit}.")

    try:
        result = await _orchestrator(request).search(search_req)
    except Exception as e:
        logger.error("Search failed | query=%r | %s", search_req.query, str(e)[:300])
        return _error(500, "Search failed. Please try again later.")

    return JSONResponse(content=result.model_dump(mode="json", by_alias=True))


@app.get("/api/search/recent")
async def recent_searches(request: Request, limit: int | None = Query(None, ge=1)):
    limit = limit or settings.recent_queries_limit
    entries = await _orchestrator(request).get_recent_queries(limit)
    return [entry.model_dump(mode="json", by_alias=True) for entry in entries]


@app.get("/api/search/performance")
async def search_performance(request: Request):
    metrics = await _orchestrator(request).get_performance_metrics()
    return metrics.model_dump(mode="json", by_alias=True)


@app.get("/api/search/performance/daily")
async def search_performance_daily(request: Request, days: int = Query(7, ge=1)):
    series = await _orchestrator(request).get_performance_over_time(days)
    return [point.model_dump(mode="json", by_alias=True) for point in series]


@app.get("/api/cache/stats")
async def cache_stats(request: Request):
    stats = await _orchestrator(request).get_cache_stats()
    return stats.model_dump(mode="json", by_alias=True)


@app.delete("/api/cache")
async def clear_cache(request: Request, key: str | None = None):
    """Clear one cache entry by key, or sweep all expired entries."""
    removed = await _orchestrator(request).clear_cache(key)
    return {"removed": removed, "key": key}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("decision_search.main:app", host=settings.host, port=settings.port)
