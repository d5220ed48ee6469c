"""Health check endpoints: liveness / readiness split."""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from xfactor_api.api.deps import get_storage
from xfactor_api.core.database import get_db
from xfactor_api.services import get_redis_cache
from xfactor_api.services.object_storage import ObjectStorage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_database(db: AsyncSession) -> None:
    await db.execute(text("SELECT 1"))


async def _check_redis() -> None:
    cache = await get_redis_cache()
    if cache.client is None:
        raise ConnectionError("Redis not connected")
    await cache.client.ping()


async def _check_storage(storage: ObjectStorage) -> None:
    if not await storage.bucket_ready():
        raise ConnectionError(f"Bucket {storage.bucket} missing")


async def _run_checks(db: AsyncSession, storage: ObjectStorage) -> dict[str, str | None]:
    """Dependency name -> None when healthy, else the failure text."""
    results: dict[str, str | None] = {}
    for name, check in (
        ("database", lambda: _check_database(db)),
        ("redis", _check_redis),
        ("storage", lambda: _check_storage(storage)),
    ):
        try:
            await check()
            results[name] = None
        except Exception as e:
            logger.warning("Health check %s failed: %s", name, e)
            results[name] = str(e) or type(e).__name__
    return results


@router.get("/health")
async def health_check(
    response: Response,
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
) -> dict:
    results = await _run_checks(db, storage)
    errors = {name: error for name, error in results.items() if error}
    if errors:
        response.status_code = 503
    return {
        "status": "degraded" if errors else "healthy",
        "services": {"api": "healthy", **{n: "unhealthy" if e else "healthy" for n, e in results.items()}},
        "errors": errors,
    }


@router.get("/health/live")
async def liveness() -> dict:
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(
    response: Response,
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
) -> dict:
    results = await _run_checks(db, storage)
    checks = {name: "not_ready" if error else "ready" for name, error in results.items()}
    ready = all(v == "ready" for v in checks.values())
    if not ready:
        response.status_code = 503
    return {"status": "ready" if ready else "not_ready", "checks": checks}
