"""Fixed-window request limits per user, counted in Redis."""
from typing import Optional
from fastapi import HTTPException
from app.core.redis import get_redis
from app.core.config import settings
from app.core.metrics import rate_limit_exceeded


def rate_limit_key(user_id: int, scope: str = "api") -> str:
    return f"rl:{scope}:{user_id}"


async def check_rate_limit(user_id: int, scope: str = "api", limit: Optional[int] = None):
    """Count one request against the user's window for ``scope``.

    The counter is incremented first so concurrent requests cannot both read
    the last free slot; the window starts with the first request.
    """
    redis = get_redis()
    key = rate_limit_key(user_id, scope)
    limit = limit or settings.RATE_LIMIT

    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, settings.RATE_LIMIT_WINDOW)
    if count > limit:
        rate_limit_exceeded.labels(scope=scope).inc()
        raise HTTPException(status_code=429, detail="Rate limit exceeded")
