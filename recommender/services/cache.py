"""Redis cache helper — get/set/invalidate with JSON serialization."""

from __future__ import annotations

import json
from typing import Any, Optional

import redis.asyncio as redis
import structlog

from recommender.config import get_settings

logger = structlog.get_logger()

_redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        _redis_client = redis.from_url(settings.redis_dsn, decode_responses=True)
    return _redis_client


def recommendations_key(user_id: int, limit: int, exclude_ids: tuple[int, ...], genre: Optional[str]) -> str:
    excluded = ",".join(str(i) for i in sorted(exclude_ids)) or "-"
    return f"rec:user:{user_id}:top:{limit}:ex:{excluded}:genre:{(genre or '-').lower()}"


async def get_cached(key: str) -> Optional[Any]:
    """Get a cached value by key. Misses and Redis errors both return None."""
    if not get_settings().cache_enabled:
        return None
    try:
        r = await get_redis()
        value = await r.get(key)
        if value:
            return json.loads(value)
    except redis.RedisError:
        logger.warning("cache_get_error", key=key)
    return None


async def set_cached(key: str, value: Any, ttl_seconds: int = 300) -> None:
    """Set a cached value with TTL (default 5 minutes)."""
    if not get_settings().cache_enabled:
        return
    try:
        r = await get_redis()
        await r.setex(key, ttl_seconds, json.dumps(value, default=str))
    except redis.RedisError:
        logger.warning("cache_set_error", key=key)


async def invalidate_user(user_id: int) -> None:
    """Drop every cached recommendation list for a user."""
    if not get_settings().cache_enabled:
        return
    pattern = f"rec:user:{user_id}:*"
    try:
        r = await get_redis()
        async for key in r.scan_iter(match=pattern):
            await r.delete(key)
    except redis.RedisError:
        logger.warning("cache_invalidate_error", pattern=pattern)


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
