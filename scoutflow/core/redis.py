"""
Redis connection

A single client instance is shared by the process, created lazily through
lru_cache. Redis holds the subscription read-model cache.
"""
from __future__ import annotations

from functools import lru_cache

import redis

from scoutflow.core.config import settings


@lru_cache(maxsize=1)
def get_redis() -> redis.Redis:
    """
    Return the shared Redis client

    decode_responses=True makes every read return str instead of bytes.
    No connection is opened until the first command.
    """
    return redis.Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        password=settings.REDIS_PASSWORD,
        decode_responses=True,
    )
