"""Redis client wrapper.

Holds the shared connection pool and the expiring one-time-code records.

Key patterns (see ``core/redis_keys.py``):
- ``{env}:api:auth:otp:{email}`` - one-time code hash (TTL: OTP_EXPIRY_MINUTES)
- ``{env}:api:auth:rt:{jti}`` - refresh token hash (TTL: refresh lifetime)
- ``{env}:rl:{scope}:{id}`` - sliding-window rate limit
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as redis

from xfactor_api.core.config import settings
from xfactor_api.core.redis_keys import key_otp

logger = logging.getLogger(__name__)


class RedisCacheService:
    """Shared Redis connection plus the one-time-code records."""

    def __init__(self):
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        if self._client is not None:
            return
        try:
            self._pool = redis.ConnectionPool.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                max_connections=50,
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as e:
            logger.warning("Redis connection failed: %s", e)
            self._client = None

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._pool:
            await self._pool.disconnect()
            self._pool = None

    @property
    def client(self) -> Optional[redis.Redis]:
        return self._client

    def _is_available(self) -> bool:
        return self._client is not None

    # ==================== One-time codes ====================

    async def store_otp(self, email: str, code: str, ttl_seconds: int) -> bool:
        """Replace any pending code for ``email``; attempts start at 0."""
        if not self._is_available():
            return False
        key = key_otp(email)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            pipe.hset(key, mapping={"code": code, "attempts": 0})
            pipe.expire(key, ttl_seconds)
            await pipe.execute()
        return True

    async def get_otp(self, email: str) -> Optional[dict]:
        if not self._is_available():
            return None
        data = await self._client.hgetall(key_otp(email))
        if not data:
            return None
        return {"code": data.get("code"), "attempts": int(data.get("attempts", 0))}

    async def record_otp_failure(self, email: str) -> int:
        """Increment the failed-attempt counter; returns the new count."""
        if not self._is_available():
            return 0
        return int(await self._client.hincrby(key_otp(email), "attempts", 1))

    async def drop_otp(self, email: str) -> None:
        if self._is_available():
            await self._client.delete(key_otp(email))


# Singleton instance
_redis_cache: Optional[RedisCacheService] = None


async def get_redis_cache() -> RedisCacheService:
    global _redis_cache
    if _redis_cache is None:
        _redis_cache = RedisCacheService()
        await _redis_cache.connect()
    return _redis_cache


async def close_redis_cache() -> None:
    global _redis_cache
    if _redis_cache is not None:
        await _redis_cache.disconnect()
        _redis_cache = None
