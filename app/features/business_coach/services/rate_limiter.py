"""
Per-account fixed-window rate limiting for coach requests.

Two interchangeable backends share the ``admit(account_id)`` contract:

- ``FixedWindowRateLimiter`` keeps windows in process memory with a lock
  per account; elapsed windows are pruned on the next admit.
- ``RedisFixedWindowRateLimiter`` keeps the counter in Redis through an
  atomic Lua script and fails open when Redis is unavailable.

A window starts with the first admitted request and resets once
``now > window_start + window_seconds``.
"""

import asyncio
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class RateLimitWindow:
    account_id: str
    window_start: float
    count: int


@dataclass(slots=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int | None = None
    window_seconds: int | None = None
    error: str | None = None

    def as_info(self) -> dict:
        """Standardized info dict consumed by the rate limit headers middleware."""
        info = {
            "allowed": self.allowed,
            "limit": self.limit,
            "remaining": self.remaining,
            "retry_after": self.retry_after,
        }
        if self.window_seconds is not None:
            info["window_seconds"] = self.window_seconds
        if self.error:
            info["error"] = self.error
        return info


class AccountRateLimiter(Protocol):
    limit: int
    window_seconds: int

    async def admit(self, account_id: str) -> RateLimitDecision: ...

    def stats(self) -> dict: ...


class FixedWindowRateLimiter:
    def __init__(
        self,
        limit: int = 10,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, RateLimitWindow] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _prune(self, now: float) -> None:
        """Forget elapsed windows, with their locks, for accounts not mid-admit."""
        for account_id in [
            a for a, w in self._windows.items() if now > w.window_start + self.window_seconds
        ]:
            lock = self._locks.get(account_id)
            if lock is None or not lock.locked():
                del self._windows[account_id]
                self._locks.pop(account_id, None)

    async def admit(self, account_id: str) -> RateLimitDecision:
        self._prune(self._clock())
        async with self._locks.setdefault(account_id, asyncio.Lock()):
            now = self._clock()
            window = self._windows.get(account_id)

            if window is None or now > window.window_start + self.window_seconds:
                self._windows[account_id] = RateLimitWindow(account_id, window_start=now, count=1)
                return RateLimitDecision(
                    allowed=True,
                    limit=self.limit,
                    remaining=self.limit - 1,
                    window_seconds=self.window_seconds,
                )

            if window.count >= self.limit:
                retry_after = max(1, math.ceil(window.window_start + self.window_seconds - now))
                logger.warning(
                    "Account rate limit exceeded",
                    account_id=account_id,
                    limit=self.limit,
                    retry_after=retry_after,
                )
                return RateLimitDecision(
                    allowed=False,
                    limit=self.limit,
                    remaining=0,
                    retry_after=retry_after,
                    window_seconds=self.window_seconds,
                )

            window.count += 1
            return RateLimitDecision(
                allowed=True,
                limit=self.limit,
                remaining=self.limit - window.count,
                window_seconds=self.window_seconds,
            )

    def window_for(self, account_id: str) -> RateLimitWindow | None:
        return self._windows.get(account_id)

    def rate_limited_accounts(self) -> int:
        now = self._clock()
        return sum(
            1
            for window in self._windows.values()
            if window.count >= self.limit and now <= window.window_start + self.window_seconds
        )

    def stats(self) -> dict:
        return {
            "backend": "memory",
            "limit": self.limit,
            "window_seconds": self.window_seconds,
            "tracked_accounts": len(self._windows),
            "rate_limited_accounts": self.rate_limited_accounts(),
        }


class RedisFixedWindowRateLimiter:
    """
    Redis-backed fixed window shared across processes.

    Thread Safety:
        INCR and EXPIRE run inside one Lua script, so concurrent requests
        never observe a counter without its expiry.
    """

    # Returns: {current_count, ttl_seconds}
    FIXED_WINDOW_LUA_SCRIPT = """
    local key = KEYS[1]
    local window_seconds = tonumber(ARGV[1])

    local current = redis.call('INCR', key)
    if current == 1 then
        redis.call('EXPIRE', key, window_seconds)
    end

    local ttl = redis.call('TTL', key)
    return {current, ttl}
    """

    def __init__(self, redis_client, limit: int = 10, window_seconds: int = 60, fail_open: bool = True):
        self.redis = redis_client
        self.limit = limit
        self.window_seconds = window_seconds
        self.fail_open = fail_open

    async def admit(self, account_id: str) -> RateLimitDecision:
        redis_key = f"ratelimit:coach:{account_id}"

        try:
            if not self.redis.client:
                return self._on_failure(account_id, "redis_not_initialized")

            result = await self.redis.client.eval(
                self.FIXED_WINDOW_LUA_SCRIPT,
                1,  # Number of keys
                redis_key,  # KEYS[1]
                self.window_seconds,  # ARGV[1]
            )
            current_count = int(result[0])
            ttl = int(result[1])

        except Exception as e:
            logger.error(
                "Rate limiter Redis error",
                error=str(e),
                error_type=type(e).__name__,
                account_id=account_id,
            )
            return self._on_failure(account_id, "rate_limiter_error")

        if current_count > self.limit:
            retry_after = max(1, ttl if ttl > 0 else self.window_seconds)
            logger.warning(
                "Account rate limit exceeded",
                account_id=account_id,
                limit=self.limit,
                retry_after=retry_after,
            )
            return RateLimitDecision(
                allowed=False,
                limit=self.limit,
                remaining=0,
                retry_after=retry_after,
                window_seconds=self.window_seconds,
            )

        return RateLimitDecision(
            allowed=True,
            limit=self.limit,
            remaining=max(0, self.limit - current_count),
            window_seconds=self.window_seconds,
        )

    def _on_failure(self, account_id: str, error: str) -> RateLimitDecision:
        if self.fail_open:
            logger.warning("Rate limiter unavailable, failing open", account_id=account_id, error=error)
            return RateLimitDecision(
                allowed=True, limit=self.limit, remaining=self.limit, error=error
            )
        return RateLimitDecision(
            allowed=False,
            limit=self.limit,
            remaining=0,
            retry_after=self.window_seconds,
            error=error,
        )

    def stats(self) -> dict:
        return {
            "backend": "redis",
            "limit": self.limit,
            "window_seconds": self.window_seconds,
            "fail_open": self.fail_open,
        }
