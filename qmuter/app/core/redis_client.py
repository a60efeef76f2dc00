"""
Redis client initialization.

Redis backs the per-caller rate limit counters of the tracking API.
"""

import redis.asyncio as redis
from qmuter.app.core.config import settings


redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.
    
    Used as a FastAPI dependency so tests can override it.
    """
    return redis_client
