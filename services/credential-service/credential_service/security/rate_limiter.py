"""Login attempt throttling: in-memory sliding window limiter and backend selection."""

from __future__ import annotations

import logging
import time
from collections import deque
from threading import Lock
from typing import TYPE_CHECKING, Deque, Dict, Protocol

from ..config import Settings

if TYPE_CHECKING:
    from .redis_rate_limiter import RedisSlidingWindowRateLimiter

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    def allow(self, key: str) -> bool: ...

    def reset(self, key: str) -> None: ...


class SlidingWindowRateLimiter:
    """Thread-safe sliding window rate limiter with an optional lockout.

    Keys whose window has emptied are dropped, and a full sweep of stale keys
    runs at most once per window, so memory is bounded by the identifiers seen
    within the last window.
    """

    def __init__(self, max_requests: int, window_seconds: int, lockout_seconds: int = 0) -> None:
        """Initialise limiter parameters and per-key storage."""
        self._max_requests = max_requests
        self._window = window_seconds
        self._lockout = lockout_seconds
        self._events: Dict[str, Deque[float]] = {}
        self._locked_until: Dict[str, float] = {}
        self._last_sweep = time.time()
        self._lock = Lock()

    def allow(self, key: str) -> bool:
        """Return ``True`` when the attempt is within the configured rate limit."""
        now = time.time()
        with self._lock:
            if now - self._last_sweep >= self._window:
                self._sweep(now)

            locked_until = self._locked_until.get(key)
            if locked_until is not None:
                if now < locked_until:
                    return False
                del self._locked_until[key]

            queue = self._events.get(key)
            if queue is not None:
                self._prune(queue, now)
            if queue and len(queue) >= self._max_requests:
                if self._lockout > 0:
                    self._locked_until[key] = now + self._lockout
                return False
            if queue is None:
                queue = self._events[key] = deque()
            queue.append(now)
            return True

    def reset(self, key: str) -> None:
        """Forget recorded attempts and any lockout for ``key``."""
        with self._lock:
            self._events.pop(key, None)
            self._locked_until.pop(key, None)

    def _prune(self, queue: Deque[float], now: float) -> None:
        while queue and now - queue[0] > self._window:
            queue.popleft()

    def _sweep(self, now: float) -> None:
        for key in list(self._events):
            queue = self._events[key]
            self._prune(queue, now)
            if not queue:
                del self._events[key]
        for key, locked_until in list(self._locked_until.items()):
            if locked_until <= now:
                del self._locked_until[key]
        self._last_sweep = now


def build_rate_limiter(settings: Settings) -> SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            import redis

            from .redis_rate_limiter import RedisSlidingWindowRateLimiter

            client = redis.from_url(settings.redis_url)
            # fail fast so the in-memory fallback is chosen at startup
            client.ping()
            logger.info("login rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.login_rate_limit_attempts,
                window_seconds=settings.login_rate_limit_window_seconds,
                lockout_seconds=settings.login_lockout_seconds,
            )
        except Exception as exc:  # pragma: no cover - requires a broken redis
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("login rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.login_rate_limit_attempts,
        window_seconds=settings.login_rate_limit_window_seconds,
        lockout_seconds=settings.login_lockout_seconds,
    )
