import logging
import time
from functools import lru_cache
from typing import Optional

import redis

from src.config import settings

logger = logging.getLogger("AnalyticsAPI.Throttle")


class OwnerThrottle:
    """
    Fixed-window write limit per owner, counted in Redis.
    Sits in front of the store write; the per-origin limit is slowapi's job.
    """

    def __init__(self, client, limit: int, window_seconds: int = 60):
        self.redis = client
        self.limit = limit
        self.window = window_seconds

    def _get_key(self, owner_id: str, now: float) -> str:
        bucket = int(now // self.window)
        return f"ratelimit:owner:{owner_id}:{bucket}"

    def allow(self, owner_id: str, now: Optional[float] = None) -> bool:
        """
        Count one write for the owner and report whether it is within limit.
        If Redis is unreachable the write is allowed.
        """
        key = self._get_key(owner_id, now if now is not None else time.time())
        try:
            pipe = self.redis.pipeline()
            pipe.incr(key)
            pipe.expire(key, self.window)
            count, _ = pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Redis throttle error: {e}. Allowing write.")
            return True

        if count > self.limit:
            logger.warning(f"Owner {owner_id} over write limit ({count}/{self.limit} per {self.window}s)")
            return False
        return True


@lru_cache()
def get_owner_throttle() -> Optional[OwnerThrottle]:
    """
    FastAPI dependency (singleton). None when OWNER_RATELIMIT_PER_MINUTE <= 0.
    """
    if settings.OWNER_RATELIMIT_PER_MINUTE <= 0:
        return None
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return OwnerThrottle(client, settings.OWNER_RATELIMIT_PER_MINUTE, window_seconds=60)
