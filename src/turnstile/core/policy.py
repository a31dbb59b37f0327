"""
Policy value type.

A Policy binds a fixed window, a maximum (static or resolved per role), a
key strategy and a failure mode under a name. Policies are built once at
startup and never mutated.
"""

from dataclasses import dataclass
from enum import StrEnum

from turnstile.core.errors import ConfigInvalid
from turnstile.core.identity import KeyStrategy
from turnstile.core.quota import QuotaRule


class FailureMode(StrEnum):
    """
    What to do when the counter store is unreachable.

    OPEN: allow the request (availability over enforcement).
    CLOSED: deny the request (enforcement over availability).
    """

    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class Policy:
    """
    Immutable admission rule.

    Exactly one of ``max_requests`` and ``quota`` must be set: a static
    maximum, or a QuotaRule for dynamic policies.

    Attributes:
        id: Policy name, also the first segment of every counter key.
        window_ms: Length of the fixed window in milliseconds.
        max_requests: Static maximum per window.
        quota: Role table for dynamic policies.
        key_strategy: How the client key is derived from the requester.
        failure_mode: Behaviour when the store is unavailable.
        message: Rejection message sent to denied callers.
    """

    id: str
    window_ms: int
    message: str
    max_requests: int | None = None
    quota: QuotaRule | None = None
    key_strategy: KeyStrategy = KeyStrategy.ADDRESS
    failure_mode: FailureMode = FailureMode.OPEN

    def __post_init__(self) -> None:
        if not self.id or ":" in self.id:
            raise ConfigInvalid(f"invalid policy id {self.id!r}")
        if self.window_ms < 1:
            raise ConfigInvalid(f"policy '{self.id}': window_ms must be >= 1")
        if (self.max_requests is None) == (self.quota is None):
            raise ConfigInvalid(
                f"policy '{self.id}': set exactly one of max_requests and quota"
            )
        if self.max_requests is not None and self.max_requests < 1:
            raise ConfigInvalid(f"policy '{self.id}': max_requests must be >= 1")
        if not self.message:
            raise ConfigInvalid(f"policy '{self.id}': message must not be empty")

    @property
    def is_dynamic(self) -> bool:
        return self.quota is not None

    def resolve_max(self, role: str | None) -> int:
        """Effective maximum for a caller with ``role``."""
        if self.quota is not None:
            return self.quota.resolve(role)
        return self.max_requests
