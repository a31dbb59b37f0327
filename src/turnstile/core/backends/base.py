"""
Abstract base class for counter stores.

This module defines the contract every counter backend must follow.
Separating storage from the decision engine allows:
- Testing with the in-memory backend (no Redis needed)
- Sharing counters across processes through Redis in production
- Injecting a fake store to exercise failure modes

The whole contract is a single atomic primitive: increment-with-expiry.
"""

from abc import ABC, abstractmethod
from typing import NamedTuple


class CounterResult(NamedTuple):
    """
    Outcome of a single increment.

    Attributes:
        count: Value of the counter after this increment (1 on creation).
        ttl_remaining_ms: Milliseconds until the record expires.
    """

    count: int
    ttl_remaining_ms: int


class CounterStore(ABC):
    """
    Abstract base class for fixed-window counter storage.

    Implementations must guarantee:
    - Atomicity: concurrent increments on one key observe 1..N exactly once
    - Fixed expiry: the TTL is set when the record is created and is never
      refreshed by later increments
    - Distinct failures: outages raise StoreUnavailable instead of returning
      a count

    Available implementations:
    - InMemoryCounterStore: single-instance deployments and tests
    - RedisCounterStore: multi-instance deployments sharing one Redis

    Example:
        >>> store = InMemoryCounterStore()
        >>> strategy = FixedWindowStrategy(store)

        >>> store = RedisCounterStore(from_url(redis_url))
        >>> strategy = FixedWindowStrategy(store)
    """

    #: Short backend name reported by the health endpoint.
    name: str = "abstract"

    @abstractmethod
    async def increment(self, key: str, window_ms: int) -> CounterResult:
        """
        Atomically increment the counter stored under ``key``.

        Args:
            key: Composite key identifying a (policy, client, window) triple.
            window_ms: Expiry assigned when the record is created.

        Returns:
            CounterResult with the new count and the remaining TTL.

        Raises:
            StoreUnavailable: The store timed out or is unreachable.

        Example:
            >>> await store.increment("auth:ip:10.0.0.1:1699900000000", 900000)
            CounterResult(count=1, ttl_remaining_ms=900000)
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None
