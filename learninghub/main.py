# learninghub/main.py
from __future__ import annotations

"""
# Learning Hub API — Application Entrypoint (FastAPI)

ASGI application factory and lifecycle for the Learning Hub authentication
and MFA backend.

## Design Goals
- Deterministic, testable **app factory** (`create_app`) with explicit lifespan.
- Explicit **middleware order**:
  1) request id → 2) security headers/HTTPS → 3) CORS → 4) gzip →
  5) rate limits → 6) strip `Server` header.
- Centralized exception handling (`{error, message}` for MFA failures).
- Graceful local/dev behavior: Redis is best-effort, the app never crashes on
  a missing cache.

## Probes
- `/healthz` — liveness (process up).
- `/readyz` — readiness (DB/Redis checks).
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable
import logging
import os

from fastapi import FastAPI, Request
from starlette.middleware.gzip import GZipMiddleware
from starlette.responses import JSONResponse, Response

# -- Logging bootstrap (Loguru + stdlib intercept) ----------------------------
from learninghub.core import logger as _logsetup  # noqa: F401

# -- Middlewares & security ---------------------------------------------------
from learninghub.middleware.request_id import RequestIDMiddleware
from learninghub.security_headers import install_security, configure_cors

# -- Rate limiting ------------------------------------------------------------
from slowapi.errors import RateLimitExceeded
from slowapi import _rate_limit_exceeded_handler
from learninghub.core.limiter import install_rate_limiter, rate_limit_exempt

# -- Settings, handlers, infra ------------------------------------------------
from learninghub.api.v1.routers import router as api_v1_router
from learninghub.core.config import settings
from learninghub.core.exception_handlers import register_exception_handlers
from learninghub.core.redis_client import redis_wrapper
from learninghub.db.session import async_engine, db_healthcheck

logger = logging.getLogger("learninghub")


# ─────────────────────────────────────────────────────────────────────────────
# 🔄 Lifespan: startup & shutdown
# ─────────────────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup:
        - Best-effort connect to Redis (send locks/throttles fail open without it).

    Shutdown:
        - Dispose the DB engine and close Redis.
    """
    logger.info("✅ Learning Hub API starting up (env=%s)", settings.ENV)

    try:
        await redis_wrapper.connect()
        logger.info("🔌 Redis connected")
    except Exception:
        logger.exception("Redis connect failed (continuing in degraded mode)")

    try:
        yield
    finally:
        try:
            await async_engine.dispose()
            logger.info("🛑 Database engine disposed")
        except Exception:
            logger.exception("Error disposing DB engine")

        try:
            await redis_wrapper.close()
            logger.info("🛑 Redis connection closed")
        except Exception:
            logger.exception("Error closing Redis client")

        logger.info("🛑 Learning Hub API shutting down")


# ─────────────────────────────────────────────────────────────────────────────
# 🏗️ App factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app() -> FastAPI:
    """
    Build and configure the FastAPI app instance.

    Returns:
        FastAPI: fully wired application with middleware, exception handlers,
        routers, and health/readiness endpoints.
    """
    enable_docs = settings.ENABLE_DOCS
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=getattr(settings, "VERSION", "1.0.0"),
        docs_url="/docs" if enable_docs else None,
        redoc_url="/redoc" if enable_docs else None,
        openapi_url="/openapi.json" if enable_docs else None,
        lifespan=lifespan,
    )

    # ── Middlewares (order matters) ─────────────────────────────────────────
    app.add_middleware(RequestIDMiddleware)  # 1) Correlation ID
    install_security(app)                    # 2) Security headers + HTTPS redirect
    configure_cors(app)                      # 3) CORS allow-list
    app.add_middleware(GZipMiddleware, minimum_size=1024)  # 4) GZip

    # 5) Rate limiter (SlowAPI middleware + 429 handler)
    install_rate_limiter(app)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # 6) Strip the Server header at the end of the chain
    @app.middleware("http")
    async def _strip_server_header(request: Request, call_next: Callable) -> Response:
        response: Response = await call_next(request)
        if "server" in response.headers:
            del response.headers["server"]
        return response

    # ── Exception handlers ──────────────────────────────────────────────────
    register_exception_handlers(app)

    # ── Routers (versioned API) ─────────────────────────────────────────────
    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    # ── Meta endpoints ──────────────────────────────────────────────────────
    @app.get("/healthz", tags=["meta"])
    @rate_limit_exempt()
    async def healthz() -> dict[str, bool]:
        """Liveness probe: `{"ok": true}` while the process is responsive."""
        return {"ok": True}

    @app.get("/readyz", tags=["meta"])
    @rate_limit_exempt()
    async def readyz() -> dict[str, object]:
        """
        Readiness probe. The database is required; Redis is reported but
        optional (MFA state is durable in the database).
        """
        db_ok = await db_healthcheck()
        redis_ok = await redis_wrapper.is_connected()
        return {
            "ready": db_ok,
            "checks": {"db": db_ok, "redis": redis_ok},
        }

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        return JSONResponse(
            {
                "name": settings.PROJECT_NAME,
                "docs": app.docs_url or "",
                "version": getattr(settings, "VERSION", "1.0.0"),
            }
        )

    return app


# ─────────────────────────────────────────────────────────────────────────────
# 🚀 Module-level ASGI app for Uvicorn/Gunicorn
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()
__all__ = ["create_app", "app"]


# Local dev runner (prefer: `uvicorn learninghub.main:app --reload`)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "learninghub.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
