"""Atomic sliding-window rate limiting backed by a Redis Lua script."""

import logging
import time
from typing import NamedTuple, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from xfactor_api.core.config import settings
from xfactor_api.core.redis_keys import key_rate_limit
from xfactor_api.services.redis_cache import get_redis_cache

logger = logging.getLogger(__name__)

# returns {allowed, remaining, reset_ms}
SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
local count = redis.call('ZCARD', key)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local reset = oldest[2] and (tonumber(oldest[2]) + window) or (now + window)

if count < limit then
    redis.call('ZADD', key, now, member)
    redis.call('PEXPIRE', key, window)
    return {1, limit - count - 1, reset}
end
return {0, 0, reset}
"""

_EXEMPT_PATHS = {"/metrics", "/docs", "/redoc", "/openapi.json", "/"}


class WindowState(NamedTuple):
    allowed: bool
    remaining: int
    reset_ms: int


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP sliding window over ``API_PREFIX`` routes. Fails open when Redis is down."""

    def __init__(self, app, limit: Optional[int] = None, window_seconds: Optional[int] = None):
        super().__init__(app)
        self.limit = limit or settings.RATE_LIMIT_PER_WINDOW
        self.window_ms = (window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS) * 1000

    async def _hit(self, client_ip: str, now_ms: int, request_id: int) -> Optional[WindowState]:
        cache = await get_redis_cache()
        if not cache.client:
            return None
        allowed, remaining, reset_ms = await cache.client.eval(
            SLIDING_WINDOW_LUA, 1, key_rate_limit("ip", client_ip),
            now_ms, self.window_ms, self.limit, f"{now_ms}-{request_id}",
        )
        return WindowState(bool(allowed), int(remaining), int(reset_ms))

    def _headers(self, state: WindowState) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(state.remaining),
            "X-RateLimit-Reset": str(state.reset_ms // 1000),
        }

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in _EXEMPT_PATHS or not path.startswith(settings.API_PREFIX):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now_ms = int(time.time() * 1000)
        try:
            state = await self._hit(client_ip, now_ms, id(request))
        except Exception as e:
            logger.warning("RateLimit Redis error (fallback=allow): %s", e)
            state = None

        if state is None:
            return await call_next(request)

        headers = self._headers(state)
        if not state.allowed:
            logger.info("Rate limit exceeded for %s on %s", client_ip, path)
            headers["Retry-After"] = str(max(1, (state.reset_ms - now_ms) // 1000))
            return JSONResponse(
                status_code=429,
                content={
                    "status": "error",
                    "message": "Too many requests from this IP, please try again later.",
                    "error": {"code": "rate_limited"},
                },
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
