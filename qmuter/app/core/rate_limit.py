"""
Per-caller rate limiting backed by Redis.

Fixed window counters: one key per caller and window, expiring with the
window. Location pings are frequent, so the live tracking router gets a
generous limit.
"""

import logging
import time
from fastapi import Depends, HTTPException, status
from redis.exceptions import RedisError

from qmuter.app.core.config import settings
from qmuter.app.core.dependencies import get_current_user
from qmuter.app.core.redis_client import get_redis

logger = logging.getLogger("qmuter.ratelimit")

RATE_LIMIT_PREFIX = "ratelimit:"


async def hit(redis, key: str, max_requests: int, window_seconds: int) -> tuple:
    """
    Count one request against a fixed window.
    
    Returns:
        (allowed, retry_after_seconds)
    """
    now = int(time.time())
    window_start = now - (now % window_seconds)
    window_key = f"{RATE_LIMIT_PREFIX}{key}:{window_start}"
    
    count = await redis.incr(window_key)
    if count == 1:
        await redis.expire(window_key, window_seconds)
    
    if count > max_requests:
        return False, window_start + window_seconds - now
    return True, 0


def rate_limit(scope: str, max_requests: int = None, window_seconds: int = None):
    """
    Dependency factory limiting each authenticated caller within a scope.
    
    Usage:
        router = APIRouter(dependencies=[Depends(rate_limit("live-tracking"))])
    
    Redis outages fail open: availability of location updates wins over
    strict limiting.
    """
    async def limiter(
        current_user: dict = Depends(get_current_user),
        redis=Depends(get_redis),
    ) -> None:
        limit = max_requests or settings.tracking_rate_limit_requests
        window = window_seconds or settings.tracking_rate_limit_window_seconds
        key = f"{scope}:{current_user['user_id']}"
        
        try:
            allowed, retry_after = await hit(redis, key, limit, window)
        except RedisError as e:
            logger.warning("Rate limiter unavailable, allowing request: %s", e)
            return
        
        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded",
                headers={"Retry-After": str(max(retry_after, 1))},
            )
    
    return limiter
