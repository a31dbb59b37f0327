"""
In-memory counter store for single-instance deployments and tests.

Counters live in a fixed number of shards, each a dictionary guarded by its
own lock. A key always maps to the same shard, so increments on one key are
serialized while unrelated keys rarely contend.

WARNING: counters are per process. Running several workers multiplies the
effective limit; use RedisCounterStore when instances must share quotas.
"""

import threading
from dataclasses import dataclass

from turnstile.core.backends.base import CounterResult, CounterStore
from turnstile.core.clock import Clock, now_ms


@dataclass
class _Counter:
    count: int
    expires_at: int


class _Shard:
    __slots__ = ("lock", "records", "ops")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.records: dict[str, _Counter] = {}
        self.ops = 0


class InMemoryCounterStore(CounterStore):
    """
    Process-local implementation of CounterStore.

    Expired records are dropped lazily when their key is touched, and each
    shard is swept every ``sweep_every`` increments so keys from past windows
    do not accumulate.

    Example:
        >>> store = InMemoryCounterStore()
        >>> await store.increment("general:ip:10.0.0.1:0", 60_000)
        CounterResult(count=1, ttl_remaining_ms=60000)
    """

    name = "memory"

    def __init__(
        self,
        clock: Clock = now_ms,
        shards: int = 64,
        sweep_every: int = 1024,
    ) -> None:
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._clock = clock
        self._shards = [_Shard() for _ in range(shards)]
        self._sweep_every = sweep_every

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    async def increment(self, key: str, window_ms: int) -> CounterResult:
        shard = self._shard_for(key)
        with shard.lock:
            now = self._clock()
            counter = shard.records.get(key)

            if counter is None or counter.expires_at <= now:
                counter = _Counter(count=1, expires_at=now + window_ms)
                shard.records[key] = counter
            else:
                # Expiry is fixed at creation; never extended here.
                counter.count += 1

            shard.ops += 1
            if shard.ops >= self._sweep_every:
                shard.ops = 0
                self._sweep(shard, now)

            return CounterResult(counter.count, counter.expires_at - now)

    @staticmethod
    def _sweep(shard: _Shard, now: int) -> None:
        expired = [k for k, c in shard.records.items() if c.expires_at <= now]
        for k in expired:
            del shard.records[k]

    # =========================================================================
    # Utility Methods (not part of interface, useful for testing)
    # =========================================================================

    def clear(self) -> None:
        """Drop every counter."""
        for shard in self._shards:
            with shard.lock:
                shard.records.clear()
                shard.ops = 0

    def keys(self) -> list[str]:
        """All keys whose records have not expired yet."""
        now = self._clock()
        live: list[str] = []
        for shard in self._shards:
            with shard.lock:
                live.extend(k for k, c in shard.records.items() if c.expires_at > now)
        return live
