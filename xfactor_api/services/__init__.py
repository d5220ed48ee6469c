"""Service layer."""

from xfactor_api.services.redis_cache import RedisCacheService, close_redis_cache, get_redis_cache

__all__ = ["RedisCacheService", "close_redis_cache", "get_redis_cache"]
