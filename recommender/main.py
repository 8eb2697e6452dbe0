"""
FastAPI application — the entrypoint for the book rental recommendation service.

Mounts the recommendation router and exposes health, readiness and Prometheus
metrics. Tables are created at startup only in development.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, generate_latest
from sqlalchemy import text
from starlette.responses import Response

from recommender.config import get_settings
from recommender.logging_config import setup_logging
from recommender.routers import recommendations

settings = get_settings()
setup_logging(settings.log_level, settings.log_format)
logger = structlog.get_logger()

# ── Prometheus metrics ──
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and graceful shutdown."""
    logger.info("recommender_starting", environment=settings.environment)

    if settings.environment == "development":
        from recommender.database import Base, engine
        # Register every table on Base.metadata
        from recommender.models import book, reading_history, user  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_created")

    yield

    logger.info("recommender_shutting_down")
    from recommender.database import engine
    from recommender.services.cache import close_redis

    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Book Rental Recommendations",
    description="Rule-based personalized book recommendations for the rental catalog",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# ── Request metrics middleware ──
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = time.time() - start

    endpoint = request.url.path
    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()
    REQUEST_LATENCY.labels(
        method=request.method,
        endpoint=endpoint,
    ).observe(duration)

    return response


# ── Routers ──
app.include_router(recommendations.router)


# ── Health / Readiness ──
@app.get("/health", tags=["Health"])
async def health():
    return {"status": "healthy", "service": "recommender"}


@app.get("/ready", tags=["Health"])
async def readiness():
    """Readiness check: verifies DB and, when caching is on, Redis connectivity."""
    checks = {}
    try:
        from recommender.database import engine
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        checks["database"] = "error"

    if settings.cache_enabled:
        try:
            from recommender.services.cache import get_redis
            r = await get_redis()
            await r.ping()
            checks["redis"] = "ok"
        except Exception:
            checks["redis"] = "error"

    all_ok = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={"status": "ready" if all_ok else "not_ready", "checks": checks},
    )


# ── Prometheus metrics endpoint ──
@app.get("/metrics", tags=["Monitoring"])
async def metrics():
    return Response(content=generate_latest(), media_type="text/plain")
