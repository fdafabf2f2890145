"""
Investment platform API.

Mounts the /v1 routers, the request logging middleware and the error
handlers that turn every failure into {"error_code", "message", "details"}.
Run with `uvicorn backend.app.main:app`.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.db.session import create_tables
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.core.redis_client import ping_redis, close_redis
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

configure_logging(settings.log_level)

EXCEPTION_HANDLERS = {
    AppException: app_exception_handler,
    HTTPException: http_exception_handler,
    RequestValidationError: validation_exception_handler,
    Exception: generic_exception_handler,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables before serving; close the Redis pool on shutdown."""
    await create_tables()
    yield
    await close_redis()


app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Investment plans, daily profit collection, referrals and admin settlement",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

for exc_class, handler in EXCEPTION_HANDLERS.items():
    app.add_exception_handler(exc_class, handler)

app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Liveness plus Redis reachability.

    Redis only backs session revocation, so an unreachable Redis reports
    "degraded" rather than failing the check.
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "redis": "up" if redis_ok else "down",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }
