import logging
import os
from typing import Optional

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


class _NullRedis:
    """No-op Redis client used when Redis is disabled or unavailable.

    Mirrors the counter commands used by the rate limiter so callers never
    need try/except around ``get_redis_client()``. Every INCR reports a first
    hit, which means shared limits are effectively disabled.
    """

    def incr(self, key: str, amount: int = 1) -> int:
        return amount

    def expire(self, key: str, seconds: int) -> bool:
        return True

    def ttl(self, key: str) -> int:
        return -2

    def ping(self) -> bool:
        return False

    def close(self) -> None:
        return None


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def get_redis_client() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        url = (settings.REDIS_URL or "").strip()
        # Allow disabling via empty/none/disabled/false
        if not url or url.lower() in {"none", "disabled", "false", "0"}:
            _redis_client = _NullRedis()  # type: ignore[assignment]
            return _redis_client
        try:
            _redis_client = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=_float_env("REDIS_CONNECT_TIMEOUT", 0.5),
                socket_timeout=_float_env("REDIS_SOCKET_TIMEOUT", 0.5),
            )
        except (redis.RedisError, ValueError) as exc:
            logger.warning("Redis unavailable, shared counters disabled: %s", exc)
            _redis_client = _NullRedis()  # type: ignore[assignment]
    return _redis_client


def close_redis_client() -> None:
    global _redis_client
    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None
