"""Per-user rate limiting for mutating endpoints.

Fixed-window counters keyed by ``(scope, user)``. The Redis backend uses
``INCR`` + ``EXPIRE`` so limits hold across workers; the memory backend is
for development and tests.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import redis
import structlog
from fastapi import Depends

from labbook.config import RateLimitConfig, get_config
from labbook.core.errors import RateLimitedError
from labbook.models import Actor
from labbook.web.auth import get_current_actor

logger = structlog.get_logger(__name__)


class FixedWindowRateLimiter:
    """Counts hits per key inside fixed windows of ``window_seconds``."""

    def __init__(
        self,
        window_seconds: int = 60,
        redis_client: redis.Redis | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.window_seconds = window_seconds
        self._redis = redis_client
        self._clock = clock
        self._counts: dict[str, tuple[int, int]] = {}
        self._lock = threading.Lock()

    def _window(self) -> int:
        return int(self._clock()) // self.window_seconds

    def retry_after(self) -> int:
        elapsed = int(self._clock()) % self.window_seconds
        return max(self.window_seconds - elapsed, 1)

    def hit(self, key: str) -> int:
        """Record one hit and return the count for the current window."""
        window = self._window()
        if self._redis is not None:
            redis_key = f"rate_limit:{key}:{window}"
            try:
                pipe = self._redis.pipeline()
                pipe.incr(redis_key)
                pipe.expire(redis_key, self.window_seconds + 1)
                count, _ = pipe.execute()
                return int(count)
            except redis.exceptions.RedisError as exc:
                # Allow the request through when the counter store is down
                logger.error("rate_limit_backend_error", key=key, error=str(exc))
                return 0

        with self._lock:
            stored_window, count = self._counts.get(key, (window, 0))
            if stored_window != window:
                count = 0
            count += 1
            self._counts[key] = (window, count)
            return count

    def check(self, key: str, limit: int) -> None:
        count = self.hit(key)
        if count > limit:
            retry_after = self.retry_after()
            logger.warning("rate_limit_exceeded", key=key, count=count, limit=limit)
            raise RateLimitedError(
                f"Rate limit exceeded. Try again in {retry_after} seconds.",
                retry_after=retry_after,
                limit=limit,
            )

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()


_limiter: FixedWindowRateLimiter | None = None


def get_rate_limiter() -> FixedWindowRateLimiter:
    """Get the process-wide limiter, built from ``RateLimitConfig``."""
    global _limiter
    if _limiter is None:
        config = get_config()
        redis_client = None
        if config.rate_limit.backend == "redis":
            redis_client = redis.from_url(config.redis_url, decode_responses=True)
        _limiter = FixedWindowRateLimiter(
            window_seconds=config.rate_limit.window_seconds, redis_client=redis_client
        )
    return _limiter


def reset_rate_limiter() -> None:
    """Drop the process-wide limiter (useful for testing)."""
    global _limiter
    _limiter = None


def rate_limit(scope: str, limit_attr: str):
    """Build a dependency enforcing ``RateLimitConfig.<limit_attr>`` per user.

    Usage:
        @router.post("/api/bookings")
        async def create(actor: Actor = Depends(rate_limit("create_draft", "create_draft_limit"))):
            ...
    """

    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        limits: RateLimitConfig = get_config().rate_limit
        get_rate_limiter().check(f"{scope}:{actor.id}", getattr(limits, limit_attr))
        return actor

    return dependency
