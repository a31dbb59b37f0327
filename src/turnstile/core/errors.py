"""
Error taxonomy for admission control.

StoreUnavailable is an infrastructure fault and never reaches the caller:
the decision engine converts it into a decision according to the policy's
failure mode. LimitExceeded is the expected business outcome and is rendered
as HTTP 429. ConfigInvalid is fatal at startup.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from turnstile.core.policy import Policy
    from turnstile.core.strategies.base import Decision


class TurnstileError(Exception):
    """Base class for all admission control errors."""


class StoreUnavailable(TurnstileError):
    """The counter store timed out or lost its connection."""


class ConfigInvalid(TurnstileError):
    """A policy or setting is malformed; the service must not start."""


class LimitExceeded(TurnstileError):
    """A request was denied by a policy."""

    def __init__(self, decision: Decision, policy: Policy) -> None:
        super().__init__(f"rate limit '{policy.id}' exceeded for {decision.client_key}")
        self.decision = decision
        self.policy = policy
