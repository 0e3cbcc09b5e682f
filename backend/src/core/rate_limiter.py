"""Redis-backed rate limiter: sliding window per minute, fixed window per day."""
import logging
import time
import uuid
from dataclasses import dataclass

from core.rate_limit_config import (
    RATE_LIMITS,
    OperationType,
    RateLimitExceededError,
    RateLimitResult,
    get_operation_type,
)
from core.redis import RedisClient, get_redis_client

logger = logging.getLogger(__name__)

__all__ = [
    "OperationType",
    "RateLimitExceededError",
    "RateLimitResult",
    "RedisRateLimiter",
    "get_operation_type",
    "rate_limiter",
]

MINUTE = 60
DAY = 86400


@dataclass(frozen=True)
class _Window:
    """One counter a request is charged against."""

    label: str  # "per_minute" (sliding) or "daily" (fixed)
    key: str
    limit: int
    seconds: int

    @property
    def sliding(self) -> bool:
        return self.label == "per_minute"


def _open_result(limit: int) -> RateLimitResult:
    """Permissive result used whenever Redis cannot answer."""
    return RateLimitResult(allowed=True, limit=limit, remaining=limit, reset=0, retry_after=0)


def _windows(client_key: str, operation_type: OperationType) -> list[_Window]:
    """
    Windows for a request, in the order they are charged.

    Minute windows are per operation class. Daily budgets are pooled: sensitive
    operations share one counter, reads and writes share another.
    """
    config = RATE_LIMITS[operation_type]
    pool = "sensitive" if operation_type == OperationType.SENSITIVE else "general"
    return [
        _Window(
            "per_minute",
            f"rate:{client_key}:{operation_type.value}:min",
            config.requests_per_minute,
            MINUTE,
        ),
        _Window("daily", f"rate:{client_key}:daily:{pool}", config.requests_per_day, DAY),
    ]


class RedisRateLimiter:
    """Applies RATE_LIMITS to a client key. Fails open without Redis."""

    async def check(
        self,
        client_key: str,
        operation_type: OperationType,
    ) -> RateLimitResult:
        """
        Count one request for `client_key` and report whether it is allowed.

        A window is only charged once every window before it has passed, so a
        request refused per minute does not use up the daily budget. When all
        pass, the per-minute result is reported (it is the one that moves).
        """
        windows = _windows(client_key, operation_type)

        redis_client = get_redis_client()
        if redis_client is None or not redis_client.is_connected:
            logger.warning("redis_unavailable", extra={"operation": "rate_limit"})
            return _open_result(windows[0].limit)

        now = int(time.time())
        results = []
        for window in windows:
            result = await self._charge(redis_client, window, now)
            if not result.allowed:
                logger.warning(
                    "rate_limit_exceeded",
                    extra={
                        "client": client_key,
                        "operation": operation_type.value,
                        "limit_type": window.label,
                    },
                )
                return result
            results.append(result)
        return results[0]

    async def _charge(
        self, redis_client: RedisClient, window: _Window, now: int,
    ) -> RateLimitResult:
        if window.sliding:
            sha = redis_client.sliding_window_sha
            args = (now, window.seconds, window.limit, str(uuid.uuid4()))
        else:
            sha = redis_client.fixed_window_sha
            args = (window.limit, window.seconds)
        if sha is None:
            return _open_result(window.limit)

        raw = await redis_client.evalsha(sha, 1, window.key, *args)
        if raw is None:
            return _open_result(window.limit)

        if window.sliding:
            allowed, remaining, retry_after = raw
            reset = now + window.seconds
        else:
            allowed, remaining, ttl, retry_after = raw
            reset = now + (ttl if ttl > 0 else window.seconds)
        return RateLimitResult(
            allowed=bool(allowed),
            limit=window.limit,
            remaining=max(0, remaining),
            reset=reset,
            retry_after=0 if allowed else max(0, retry_after),
        )


rate_limiter = RedisRateLimiter()
