"""Replay cache for POST endpoints that accept an ``Idempotency-Key`` header."""
import json
from typing import Optional
from app.core.redis import get_redis
from app.core.config import settings

PREFIX = "idemp"


def idempotency_key(scope: str, owner, key: Optional[str]) -> Optional[str]:
    """Namespaced cache key, or None when the client sent no header."""
    if not key:
        return None
    return f"{PREFIX}:{scope}:{owner}:{key}"


async def get_idempotent(key: Optional[str]) -> Optional[dict]:
    if not key:
        return None
    v = await get_redis().get(key)
    return json.loads(v) if v else None


async def set_idempotent(key: Optional[str], value: dict, ttl: Optional[int] = None) -> None:
    if not key:
        return
    await get_redis().set(key, json.dumps(value, default=str), ex=ttl or settings.IDEMPOTENCY_TTL)
