from dataclasses import dataclass
import logging
import threading
import time

import redis

from infinite_ttt.services.redis_client import get_redis_client

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "infinite-ttt:ratelimit"


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int
    reset_after_seconds: int


def _decide(count: int, limit: int, reset_seconds: int) -> RateLimitDecision:
    allowed = count <= limit
    reset_seconds = max(1, reset_seconds)
    return RateLimitDecision(
        allowed=allowed,
        limit=limit,
        remaining=max(0, limit - count),
        retry_after_seconds=0 if allowed else reset_seconds,
        reset_after_seconds=reset_seconds,
    )


class RateLimitService:
    """Fixed-window counters, shared through Redis when one is configured."""

    def __init__(self, redis_client: redis.Redis | None = None) -> None:
        self._redis = redis_client
        # window key -> (hits, epoch at which the window closes)
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def check(self, key: str, *, limit: int, window_seconds: int) -> RateLimitDecision:
        safe_limit = max(1, int(limit))
        safe_window = max(1, int(window_seconds))
        decision = self._check_redis(key, safe_limit, safe_window)
        if decision:
            return decision
        return self._check_memory(key, safe_limit, safe_window)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _check_redis(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision | None:
        if self._redis is None:
            return None
        window = int(time.time() // window_seconds)
        redis_key = f"{REDIS_KEY_PREFIX}:{key}:{window}"
        try:
            pipe = self._redis.pipeline()
            pipe.incr(redis_key, 1)
            pipe.ttl(redis_key)
            count_value, ttl_value = pipe.execute()
            ttl = int(ttl_value) if isinstance(ttl_value, int) else -1
            if ttl < 0:
                self._redis.expire(redis_key, window_seconds + 1)
                ttl = window_seconds
        except redis.RedisError as exc:
            logger.debug("Redis rate limit check failed for %s, using memory: %s", key, exc)
            return None
        return _decide(int(count_value), limit, ttl)

    def _check_memory(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        now_epoch = time.time()
        window = int(now_epoch // window_seconds)
        window_key = f"{key}:{window}"
        with self._lock:
            for stale_key in [k for k, (_, closes_at) in self._windows.items() if now_epoch > closes_at + 1]:
                del self._windows[stale_key]

            hits, closes_at = self._windows.get(window_key, (0, (window + 1) * window_seconds))
            hits += 1
            self._windows[window_key] = (hits, closes_at)
        return _decide(hits, limit, int(closes_at - now_epoch))


rate_limit_service = RateLimitService(get_redis_client())
