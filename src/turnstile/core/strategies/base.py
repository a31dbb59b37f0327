"""
Abstract base classes for admission strategies.

This module defines the contract the decision engine follows and the
Decision value it produces for every request.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from turnstile.core.identity import Requester
from turnstile.core.policy import Policy


@dataclass(frozen=True)
class Decision:
    """
    Immutable outcome of an admission check.

    This object contains all information needed to:
    1. Decide whether to allow/deny the request
    2. Populate rate limit headers in the HTTP response
    3. Tell the client when they can retry (if denied)

    Attributes:
        allowed: Whether the request may proceed.
        limit: Effective maximum for this caller in the window.
        remaining: Requests left in the current window, never negative.
        reset_at: Epoch milliseconds when the current window ends.
        retry_after_ms: Milliseconds until the window ends (only if denied).
        policy_id: Policy that produced the decision.
        client_key: Client component of the counter key.
        degraded: True when the store was unavailable and the policy's
            failure mode decided instead of the counter.

    Example headers this maps to:
        X-RateLimit-Limit: {limit}
        X-RateLimit-Remaining: {remaining}
        X-RateLimit-Reset: {reset_at}
        Retry-After: ceil({retry_after_ms} / 1000)  (only on 429 responses)
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    policy_id: str
    client_key: str
    retry_after_ms: int | None = None
    degraded: bool = False


class RateLimitStrategy(ABC):
    """Abstract base class for admission algorithms."""

    @abstractmethod
    async def check(self, policy: Policy, requester: Requester) -> Decision:
        """
        Decide whether a request should be admitted.

        Called for every gated request; must be fast, safe under concurrent
        calls, and must never raise for store outages.

        Args:
            policy: The policy gating the route.
            requester: Address and identity of the caller.

        Returns:
            Decision with the verdict and header metadata.
        """
        pass
