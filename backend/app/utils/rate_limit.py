"""Fixed-window request rate limiting.

Counters live behind a small ``CounterStore`` interface. The in-memory store
is process-local and only protects a single-instance deployment; set
``RATE_LIMIT_BACKEND=redis`` to share counters across instances.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis
from fastapi import HTTPException, Request, status

from ..core.config import settings
from .redis_cache import get_redis_client

logger = logging.getLogger(__name__)


class CounterStore(Protocol):
    def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        """Count one hit; return (hits in the current window, seconds until it resets)."""
        ...


class InMemoryCounterStore:
    """Process-local counters with opportunistic eviction of expired windows."""

    def __init__(self, cleanup_interval: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._next_cleanup = clock() + cleanup_interval

    def __len__(self) -> int:
        return len(self._windows)

    def _evict_expired(self, now: float) -> None:
        if now < self._next_cleanup:
            return
        self._next_cleanup = now + self._cleanup_interval
        expired = [key for key, (_, reset_at) in self._windows.items() if now >= reset_at]
        for key in expired:
            del self._windows[key]

    def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            count, reset_at = self._windows.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + window_seconds
            count += 1
            self._windows[key] = (count, reset_at)
        return count, reset_at - now


class RedisCounterStore:
    """Shared counters using INCR with an expiry set on the first hit."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        return self._client if self._client is not None else get_redis_client()

    def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        redis_key = f"ratelimit:{key}"
        count = int(self.client.incr(redis_key))
        if count == 1:
            self.client.expire(redis_key, window_seconds)
        ttl = self.client.ttl(redis_key)
        if ttl is None or ttl < 0:
            # Key lost its expiry (e.g. crash between INCR and EXPIRE)
            self.client.expire(redis_key, window_seconds)
            ttl = window_seconds
        return count, float(ttl)


_store: Optional[CounterStore] = None


def get_counter_store() -> CounterStore:
    global _store
    if _store is None:
        if settings.RATE_LIMIT_BACKEND == "redis":
            _store = RedisCounterStore()
        else:
            _store = InMemoryCounterStore()
    return _store


def set_counter_store(store: Optional[CounterStore]) -> None:
    """Swap the shared store; ``None`` rebuilds it from settings on next use."""
    global _store
    _store = store


def client_identity(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RateLimiter:
    """FastAPI dependency enforcing ``limit`` requests per ``window`` seconds per caller."""

    def __init__(self, limit: int, window: int, scope: str, store: Optional[CounterStore] = None):
        self.limit = limit
        self.window = window
        self.scope = scope
        self._store = store

    def __call__(self, request: Request) -> None:
        store = self._store if self._store is not None else get_counter_store()
        identity = client_identity(request)
        try:
            count, reset_in = store.hit(f"{self.scope}:{identity}", self.window)
        except redis.exceptions.RedisError as exc:
            # Counters unavailable: let the request through
            logger.warning("Rate limit store unavailable for %s: %s", self.scope, exc)
            return
        if count > self.limit:
            retry_after = max(1, math.ceil(reset_in))
            logger.warning(
                "Rate limit exceeded",
                extra={"scope": self.scope, "client": identity, "count": count},
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "message": "Too many requests, please retry later",
                    "field_errors": {},
                },
                headers={"Retry-After": str(retry_after)},
            )
