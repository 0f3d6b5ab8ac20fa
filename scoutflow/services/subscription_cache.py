"""
Subscription read model

Serves the scout's subscription row and admin flag through a Redis cache.
Entries expire after a fixed TTL and are never invalidated by webhooks, so a
status change becomes visible within SUBSCRIPTION_CACHE_TTL_SECONDS.
Redis failures degrade to a direct database read.
"""
from __future__ import annotations

import logging

import redis
from sqlmodel import Session

from scoutflow import crud
from scoutflow.api.schemas import SubscriptionPublic
from scoutflow.core.config import settings
from scoutflow.core.redis import get_redis

logger = logging.getLogger(__name__)


def subscription_key(user_id: str) -> str:
    return f"subscription:{user_id}"


def admin_key(user_id: str) -> str:
    return f"user-role:admin:{user_id}"


def _cache_get(key: str) -> str | None:
    try:
        return get_redis().get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis read failed for {key}: {e}")
        return None


def _cache_set(key: str, value: str, ttl: int) -> None:
    try:
        get_redis().setex(key, ttl, value)
    except redis.RedisError as e:
        logger.warning(f"Redis write failed for {key}: {e}")


def get_subscription_record(
    *, session: Session, user_id: str, refresh: bool = False
) -> SubscriptionPublic | None:
    """
    The scout's subscription, or None when they have no row

    refresh=True skips the cached value and re-populates it.
    """
    key = subscription_key(user_id)
    if not refresh:
        cached = _cache_get(key)
        if cached is not None:
            if cached == "null":
                return None
            return SubscriptionPublic.model_validate_json(cached)

    row = crud.get_subscription_by_user_id(session=session, user_id=user_id)
    record = SubscriptionPublic.model_validate(row, from_attributes=True) if row else None
    _cache_set(
        key,
        record.model_dump_json() if record else "null",
        settings.SUBSCRIPTION_CACHE_TTL_SECONDS,
    )
    return record


def get_is_admin(*, session: Session, user_id: str, refresh: bool = False) -> bool:
    key = admin_key(user_id)
    if not refresh:
        cached = _cache_get(key)
        if cached is not None:
            return cached == "1"

    is_admin = crud.is_admin(session=session, user_id=user_id)
    _cache_set(key, "1" if is_admin else "0", settings.ADMIN_ROLE_CACHE_TTL_SECONDS)
    return is_admin
