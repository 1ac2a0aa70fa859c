"""Shared Redis connection for wizard progress.

One connection pool per process, created lazily and closed from the
FastAPI lifespan on shutdown.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from onboarding.config import settings

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")


async def ping_redis() -> bool:
    """Readiness probe; False instead of raising when Redis is down."""
    try:
        client = await get_redis()
        return bool(await client.ping())
    except redis.RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        return False
