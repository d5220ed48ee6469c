"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from xfactor_api.api.routes import auth, health, lessons, materials, support, upload, users
from xfactor_api.core.config import settings
from xfactor_api.core.database import dispose_engine
from xfactor_api.core.exception_handlers import register_exception_handlers
from xfactor_api.core.limiter import limiter
from xfactor_api.core.logging import setup_logging
from xfactor_api.middleware.rate_limit import RateLimitMiddleware
from xfactor_api.middleware.security_headers import SecurityHeadersMiddleware
from xfactor_api.services import close_redis_cache, get_redis_cache
from xfactor_api.services.object_storage import get_object_storage

setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
)
logger = logging.getLogger("xfactor_api")

DEFAULT_JWT_SECRET = "xfactor-daily-jwt-secret-change-in-production"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Refuse an unsafe secret, then bring up Redis and the materials bucket."""
    logger.info("Starting %s v%s ...", settings.APP_NAME, settings.APP_VERSION)

    if not settings.JWT_SECRET or settings.JWT_SECRET == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "JWT_SECRET is the default value. Set it in .env "
            "(e.g. openssl rand -hex 32)."
        )

    redis_cache = await get_redis_cache()
    if redis_cache.client:
        logger.info("Redis cache connected")
    else:
        logger.warning("Redis not available (one-time codes and token refresh disabled)")

    await get_object_storage().ensure_bucket()
    yield
    await close_redis_cache()
    await dispose_engine()
    logger.info("%s shutting down...", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="XFactor Daily API - daily video lessons, progress tracking and protected course materials",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# /metrics for Prometheus
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/docs", "/redoc", "/openapi.json", "/"],
).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

app.state.limiter = limiter
register_exception_handlers(app)

# last added runs first: rate limit, then CORS, then security headers
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
app.add_middleware(RateLimitMiddleware)

for _router in (health.router, auth.router, lessons.router, materials.router, upload.router, support.router, users.router):
    app.include_router(_router, prefix=settings.API_PREFIX)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("xfactor_api.main:app", host="0.0.0.0", port=8082, reload=settings.DEBUG)
