import asyncio

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from turnstile.core.backends.base import CounterResult, CounterStore
from turnstile.core.errors import StoreUnavailable

logger = structlog.get_logger()


class RedisCounterStore(CounterStore):
    """
    Shared counter store backed by Redis.

    INCR and PEXPIRE run inside one Lua script so the increment and the
    creation of the expiry are a single atomic step for every process that
    shares the server.
    """

    name = "redis"

    # LUA SCRIPT LOGIC:
    # 1. INCR the counter (creates it at 1 when missing)
    # 2. Set the expiry only when the key is new, or if it somehow lost it
    # 3. Return the count and the remaining TTL in milliseconds
    _LUA_SCRIPT = """
    local key = KEYS[1]
    local window = tonumber(ARGV[1])

    local count = redis.call('INCR', key)
    local ttl = redis.call('PTTL', key)

    if count == 1 or ttl < 0 then
        redis.call('PEXPIRE', key, window)
        ttl = window
    end

    return {count, ttl}
    """

    def __init__(self, redis: Redis, timeout_ms: int = 50, prefix: str = "turnstile:"):
        self._redis = redis
        self._timeout = timeout_ms / 1000
        self._prefix = prefix

    async def increment(self, key: str, window_ms: int) -> CounterResult:
        redis_key = f"{self._prefix}{key}"
        try:
            # Bounded round trip; never retried.
            result = await asyncio.wait_for(
                self.eval_script(self._LUA_SCRIPT, keys=[redis_key], args=[window_ms]),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise StoreUnavailable(f"redis increment timed out after {self._timeout}s") from exc
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(f"redis increment failed: {exc}") from exc

        return CounterResult(count=int(result[0]), ttl_remaining_ms=int(result[1]))

    async def eval_script(self, script: str, keys: list[str], args: list[str | int | float]):
        return await self._redis.eval(script, len(keys), *keys, *args)

    async def close(self) -> None:
        await self._redis.aclose()
        logger.info("redis_store_closed")
