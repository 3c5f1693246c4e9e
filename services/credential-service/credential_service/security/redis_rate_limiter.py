"""Redis-backed login attempt limiter shared across processes."""

from __future__ import annotations

import time
from typing import Final

from redis import Redis
from redis.exceptions import ResponseError


class RedisSlidingWindowRateLimiter:
    """Sliding window over a Redis sorted set, plus a lockout key once the window fills.

    While ``<key>:lock`` exists every attempt is refused. The attempt set and its
    sequence counter live as long as the longer of the window and the lockout,
    so a lockout never outlives the evidence that caused it.
    """

    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local counter_key = key .. ':seq'
    local lock_key = key .. ':lock'
    local window_ms = tonumber(ARGV[1])
    local max_requests = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])
    local lockout_ms = tonumber(ARGV[4])
    local ttl_ms = math.max(window_ms, lockout_ms)

    if redis.call('EXISTS', lock_key) == 1 then
        return 0
    end
    redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
    if redis.call('ZCARD', key) >= max_requests then
        if lockout_ms > 0 then
            redis.call('SET', lock_key, now_ms, 'PX', lockout_ms)
            redis.call('PEXPIRE', key, ttl_ms)
        end
        return 0
    end
    local seq = redis.call('INCR', counter_key)
    redis.call('PEXPIRE', counter_key, ttl_ms)
    redis.call('ZADD', key, now_ms, tostring(now_ms) .. ':' .. tostring(seq))
    redis.call('PEXPIRE', key, ttl_ms)
    return 1
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        lockout_seconds: int = 0,
        key_prefix: str = "login-attempts",
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._lockout_ms = lockout_seconds * 1000
        self._key_prefix = key_prefix
        self._script = client.register_script(self._LUA_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def allow(self, key: str) -> bool:
        """Return ``True`` when the key is neither locked out nor over its window budget."""
        now_ms = int(time.time() * 1000)
        redis_key = self._key(key)
        try:
            result = self._script(
                keys=[redis_key],
                args=[self._window_ms, self._max_requests, now_ms, self._lockout_ms],
            )
            return int(result) == 1
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command `evalsha`" in message or "unknown command `eval`" in message:
                return self._allow_fallback(redis_key, now_ms)
            raise

    def is_locked(self, key: str) -> bool:
        return bool(self._client.exists(f"{self._key(key)}:lock"))

    def reset(self, key: str) -> None:
        """Drop the attempt window, sequence counter, and lockout."""
        redis_key = self._key(key)
        self._client.delete(redis_key, f"{redis_key}:seq", f"{redis_key}:lock")

    def _allow_fallback(self, redis_key: str, now_ms: int) -> bool:
        """Non-atomic variant used when the server has scripting disabled."""
        ttl_ms = max(self._window_ms, self._lockout_ms)
        if self._client.exists(f"{redis_key}:lock"):
            return False
        self._client.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        if self._client.zcard(redis_key) >= self._max_requests:
            if self._lockout_ms > 0:
                self._client.set(f"{redis_key}:lock", now_ms, px=self._lockout_ms)
                self._client.pexpire(redis_key, ttl_ms)
            return False
        seq = self._client.incr(f"{redis_key}:seq")
        self._client.pexpire(f"{redis_key}:seq", ttl_ms)
        self._client.zadd(redis_key, {f"{now_ms}:{seq}": now_ms})
        self._client.pexpire(redis_key, ttl_ms)
        return True
