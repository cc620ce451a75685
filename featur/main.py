"""
Featur — FastAPI application

* Lifespan: warms the store pool, attaches Redis for live conversation
  fan-out when configured, drains in-flight requests on shutdown.
* Middleware: CORS, a per-request deadline, structured request logging.
* Store errors raised out of any route become 409 / 503 responses.
* ``/health`` (liveness) and ``/health/deep`` (store, Redis, media bucket).
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from featur.config import get_settings
from featur.database import async_session_factory, engine
from featur.services.realtime import LocalConversationHub, RedisConversationHub, set_hub

settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelNamesMapping().get(settings.LOG_LEVEL.upper(), logging.INFO)
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger("featur")


# ---------------------------------------------------------------------------
# In-flight request tracking
# ---------------------------------------------------------------------------

class _RequestTracker:
    """Counts requests currently being served so shutdown can wait for them."""

    def __init__(self) -> None:
        self.active = 0
        self._idle = asyncio.Event()
        self._idle.set()

    def enter(self) -> None:
        self.active += 1
        self._idle.clear()

    def leave(self) -> None:
        self.active -= 1
        if self.active <= 0:
            self._idle.set()

    async def drain(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


DRAIN_TIMEOUT_SECONDS = 15.0
REQUEST_TIMEOUT_SECONDS = 30.0

_tracker = _RequestTracker()


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

_redis_client = None


async def _attach_redis() -> None:
    """Route live conversation updates through Redis pub/sub.

    Without ``REDIS_URL`` the in-process hub stays in place and only
    subscribers on this worker are notified.
    """
    global _redis_client
    if not settings.REDIS_URL:
        logger.info("redis_skip", reason="REDIS_URL not configured")
        return

    import redis.asyncio as aioredis

    client = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=5,
    )
    await client.ping()
    _redis_client = client
    set_hub(RedisConversationHub(client))
    logger.info("redis_connected")


async def _detach_redis() -> None:
    global _redis_client
    if _redis_client is None:
        return
    set_hub(LocalConversationHub())
    await _redis_client.aclose()
    _redis_client = None
    logger.info("redis_closed")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("startup_begin", environment=settings.ENVIRONMENT)

    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("store_pool_ready")

    await _attach_redis()
    logger.info("startup_complete")

    yield

    logger.info("shutdown_begin", in_flight=_tracker.active)
    if not await _tracker.drain(DRAIN_TIMEOUT_SECONDS):
        logger.warning("drain_timeout_exceeded", remaining_requests=_tracker.active)

    await _detach_redis()
    await engine.dispose()
    logger.info("shutdown_complete")


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class TimeoutMiddleware(BaseHTTPMiddleware):
    """Answer 504 when a request runs past ``timeout_seconds``."""

    def __init__(self, app, timeout_seconds: float = REQUEST_TIMEOUT_SECONDS) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "request_timeout",
                method=request.method,
                path=request.url.path,
                timeout=self.timeout_seconds,
            )
            return JSONResponse(status_code=504, content={"detail": "Request timed out"})


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """One ``request_handled`` event per request, plus in-flight tracking."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        log = logger.bind(method=request.method, path=request.url.path)
        started = time.perf_counter()

        _tracker.enter()
        try:
            response = await call_next(request)
        except Exception:
            log.exception(
                "request_error",
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        finally:
            _tracker.leave()

        log.info(
            "request_handled",
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Featur",
    description="Creator discovery, matching and messaging backend",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

# Added in reverse: CORS runs first, logging last.
app.add_middleware(StructuredLoggingMiddleware)
app.add_middleware(TimeoutMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Constraint violations, e.g. a swipe naming an unknown user."""
    logger.warning(
        "store_integrity_error",
        method=request.method,
        path=request.url.path,
        error=str(exc.orig)[:200],
    )
    return JSONResponse(status_code=409, content={"detail": "Request conflicts with stored data"})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "store_unavailable",
        method=request.method,
        path=request.url.path,
        error=str(exc)[:200],
    )
    return JSONResponse(status_code=503, content={"detail": "Data store unavailable, retry later"})


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

async def _probe_store() -> str:
    async with async_session_factory() as session:
        await session.execute(text("SELECT 1"))
    return "connected"


async def _probe_redis() -> str:
    if _redis_client is None:
        return "not_configured"
    await _redis_client.ping()
    return "connected"


async def _probe_bucket() -> str:
    if not settings.GCS_BUCKET_NAME:
        return "not_configured"
    from featur.utils.storage import get_bucket

    await asyncio.to_thread(get_bucket().exists)
    return "accessible"


@app.get("/health", tags=["health"])
async def health_liveness() -> dict:
    return {"status": "healthy"}


@app.get("/health/deep", tags=["health"])
async def health_deep() -> dict:
    """Readiness: any failing dependency marks the service ``degraded``."""
    result: dict = {"status": "healthy"}
    probes = {"database": _probe_store, "redis": _probe_redis, "gcs": _probe_bucket}

    for name, probe in probes.items():
        try:
            result[name] = await probe()
        except Exception as exc:
            logger.error("health_probe_failed", dependency=name, error=str(exc))
            result[name] = f"error: {exc}"
            result["status"] = "degraded"

    return result


from featur.api.router import router as api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")
