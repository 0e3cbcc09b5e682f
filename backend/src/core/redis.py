"""Redis client used by the rate limiter, with graceful fallback when unavailable."""
import logging
from typing import Any

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

# Sliding window over a sorted set (per-minute limits).
# Returns {allowed, remaining, retry_after}.
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local request_id = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
local count = redis.call('ZCARD', key)

if count < limit then
    redis.call('ZADD', key, now, now .. ':' .. request_id)
    redis.call('EXPIRE', key, window)
    return {1, limit - count - 1, 0}
end

local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local retry_after = 0
if oldest and oldest[2] then
    retry_after = math.ceil((oldest[2] + window) - now)
end
return {0, 0, retry_after}
"""

# Fixed window counter (daily limits). Expiry is set on the first hit only.
# Returns {allowed, remaining, ttl, retry_after}.
FIXED_WINDOW_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])

local count = redis.call('INCR', key)
if count == 1 then
    redis.call('EXPIRE', key, window)
end
local ttl = redis.call('TTL', key)

if count <= limit then
    return {1, limit - count, ttl, 0}
end
return {0, 0, ttl, ttl}
"""


# Loaded once per connection; the limiter refers to them by name
RATE_LIMIT_SCRIPTS: dict[str, str] = {
    "sliding_window": SLIDING_WINDOW_SCRIPT,
    "fixed_window": FIXED_WINDOW_SCRIPT,
}


class RedisClient:
    """
    Connection to the Redis instance that backs rate limiting.

    Redis is optional: when it is disabled, unreachable at startup, or fails
    mid-request, methods return a neutral value (False/None) and callers treat
    that as "no limit" rather than an error.
    """

    def __init__(self, url: str, enabled: bool = True) -> None:
        self._url = url
        self._enabled = enabled
        self._pool: ConnectionPool | None = None
        self._redis: Redis | None = None
        self._script_shas: dict[str, str] = {}

    async def connect(self) -> None:
        """Open the pool, check the server answers and register the Lua scripts."""
        if not self._enabled:
            logger.info("redis_disabled")
            return
        pool = ConnectionPool.from_url(self._url, max_connections=10)
        redis = Redis(connection_pool=pool)
        try:
            await redis.ping()
            shas = {
                name: await redis.script_load(source)
                for name, source in RATE_LIMIT_SCRIPTS.items()
            }
        except RedisError as e:
            logger.warning("redis_connect_failed", extra={"error": str(e)})
            await redis.aclose()
            return
        self._pool, self._redis, self._script_shas = pool, redis, shas
        logger.info("redis_connected")

    async def close(self) -> None:
        """Close the connection pool."""
        if self._redis is None:
            return
        await self._redis.aclose()
        self._redis = None
        self._pool = None
        self._script_shas = {}
        logger.info("redis_closed")

    @property
    def is_connected(self) -> bool:
        """True once connect() succeeded."""
        return self._redis is not None

    def script_sha(self, name: str) -> str | None:
        """SHA of a registered script, or None if it was never loaded."""
        return self._script_shas.get(name)

    @property
    def sliding_window_sha(self) -> str | None:
        return self.script_sha("sliding_window")

    @property
    def fixed_window_sha(self) -> str | None:
        return self.script_sha("fixed_window")

    async def ping(self) -> bool:
        """True when the server answers."""
        if self._redis is None:
            return False
        try:
            return bool(await self._redis.ping())
        except RedisError:
            return False

    async def evalsha(self, sha: str, numkeys: int, *args: Any) -> Any:
        """Run a registered script; None when Redis is unavailable or errors."""
        if self._redis is None:
            return None
        try:
            return await self._redis.evalsha(sha, numkeys, *args)
        except RedisError as e:
            logger.warning("redis_evalsha_failed", extra={"error": str(e)})
            return None


class _RedisState:
    """Process-wide client slot, set by the app lifespan and swapped in tests."""

    client: RedisClient | None = None


_state = _RedisState()


def get_redis_client() -> RedisClient | None:
    """The configured client, or None before startup."""
    return _state.client


def set_redis_client(client: RedisClient | None) -> None:
    """Install or clear the process-wide client."""
    _state.client = client
