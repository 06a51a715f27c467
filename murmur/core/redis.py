from __future__ import annotations

import redis.asyncio as redis
from murmur.core.settings import settings

def get_redis(url: str | None = None) -> redis.Redis:
    # Change events are small JSON strings
    return redis.Redis.from_url(url or settings.redis_url, decode_responses=True)
