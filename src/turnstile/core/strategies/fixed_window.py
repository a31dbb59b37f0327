import structlog

from turnstile.core.backends.base import CounterStore
from turnstile.core.clock import Clock, now_ms
from turnstile.core.errors import StoreUnavailable
from turnstile.core.identity import Requester, client_key
from turnstile.core.policy import FailureMode, Policy
from turnstile.core.strategies.base import Decision, RateLimitStrategy

logger = structlog.get_logger()


class FixedWindowStrategy(RateLimitStrategy):
    """
    Fixed window counter.

    Time is cut into half-open windows [start, start + window). Each
    (policy, client, window) triple gets its own counter in the store, so a
    new window starts from zero simply because its key is new. One store
    round trip per decision.

    A burst straddling a boundary can admit up to 2x the maximum; this is
    the accepted cost of O(1) decisions.
    """

    def __init__(self, store: CounterStore, clock: Clock = now_ms, log=None):
        self.store = store
        self._clock = clock
        self._log = log if log is not None else logger

    @staticmethod
    def window_start(now: int, window_ms: int) -> int:
        return now // window_ms * window_ms

    @staticmethod
    def counter_key(policy_id: str, client: str, window_start: int) -> str:
        return f"{policy_id}:{client}:{window_start}"

    async def check(self, policy: Policy, requester: Requester) -> Decision:
        now = self._clock()
        start = self.window_start(now, policy.window_ms)
        reset_at = start + policy.window_ms
        client = client_key(policy.key_strategy, requester)
        limit = policy.resolve_max(requester.role)

        try:
            result = await self.store.increment(
                self.counter_key(policy.id, client, start), policy.window_ms
            )
        except StoreUnavailable as exc:
            return self._degraded(policy, client, limit, now, reset_at, exc)

        allowed = result.count <= limit
        return Decision(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - result.count),
            reset_at=reset_at,
            retry_after_ms=None if allowed else reset_at - now,
            policy_id=policy.id,
            client_key=client,
        )

    def _degraded(
        self,
        policy: Policy,
        client: str,
        limit: int,
        now: int,
        reset_at: int,
        exc: StoreUnavailable,
    ) -> Decision:
        fail_open = policy.failure_mode == FailureMode.OPEN
        self._log.warning(
            "rate_limit_store_unavailable",
            policy=policy.id,
            client_key=client,
            failure_mode=str(policy.failure_mode),
            error=str(exc),
        )

        if fail_open:
            # Remaining is unknown; report the full limit.
            return Decision(
                allowed=True,
                limit=limit,
                remaining=limit,
                reset_at=reset_at,
                policy_id=policy.id,
                client_key=client,
                degraded=True,
            )

        return Decision(
            allowed=False,
            limit=limit,
            remaining=0,
            reset_at=reset_at,
            retry_after_ms=reset_at - now,
            policy_id=policy.id,
            client_key=client,
            degraded=True,
        )
