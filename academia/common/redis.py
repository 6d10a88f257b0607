"""
Redis Client Utility Module

This module provides a singleton asyncio Redis client for the components
that talk to Redis directly (the leaderboard mirror).
"""

from typing import Optional

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from academia.common.logger import app_logger

logger = app_logger.getChild("redis")

# Singleton Redis client instance
_redis_client: Optional[AsyncRedis] = None


def get_redis_client(url: Optional[str] = None) -> AsyncRedis:
    """
    Get the shared Redis client, creating it on first use.

    No connection is opened here; the first command connects lazily and
    surfaces connection problems as RedisError to the caller.

    Args:
        url: Redis URL, defaults to the configured REDIS_URL

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        if url is None:
            from academia.config import settings
            url = settings.REDIS_URL
        _redis_client = AsyncRedis.from_url(url, decode_responses=True)
        logger.info("Created Redis client")

    return _redis_client


async def reset_redis_client() -> None:
    """
    Close and forget the shared Redis client.

    The next call to get_redis_client() creates a fresh connection pool.
    """
    global _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
        except RedisError as e:
            logger.error(f"Error closing Redis connection: {e}")

        _redis_client = None
        logger.info("Redis client reset")
