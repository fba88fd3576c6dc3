import logging

import redis

from infinite_ttt.core.config import get_settings

logger = logging.getLogger(__name__)


def get_redis_client() -> redis.Redis | None:
    settings = get_settings()
    if not settings.redis_url:
        return None
    try:
        return redis.Redis.from_url(settings.redis_url, decode_responses=True)
    except (redis.RedisError, ValueError) as exc:
        logger.warning("Redis unavailable at %s: %s", settings.redis_url, exc)
        return None
