"""Shared Redis connection for rate limits, idempotency keys and the geocode cache."""
import logging
from typing import Optional
from redis.asyncio import Redis
from app.core.config import settings

logger = logging.getLogger(__name__)

redis: Optional[Redis] = None


async def init_redis(url: Optional[str] = None) -> Redis:
    global redis
    try:
        redis = Redis.from_url(url or settings.REDIS_URL, decode_responses=False)
        await redis.ping()
        logger.info("Connected to Redis")
        return redis
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        redis = None
        raise


async def close_redis():
    global redis
    if redis:
        await redis.close()
        redis = None


def set_redis(client: Optional[Redis]) -> None:
    """Install an already-built client, e.g. one shared with a worker process."""
    global redis
    redis = client


def redis_available() -> bool:
    return redis is not None


def get_redis() -> Redis:
    if redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return redis
