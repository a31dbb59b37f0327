from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from turnstile.core.errors import ConfigInvalid

DEFAULT_ROLE_QUOTAS: Mapping[str, int] = MappingProxyType(
    {
        "admin": 200,
        "faculty": 150,
        "student": 100,
    }
)


@dataclass(frozen=True)
class QuotaRule:
    """
    Role-based quota table for dynamic policies.

    ``default`` applies to unauthenticated callers. ``unmatched`` applies to
    authenticated callers whose role is not in the table and falls back to
    ``default`` when not given.
    """

    quotas: Mapping[str, int] = field(default_factory=lambda: DEFAULT_ROLE_QUOTAS)
    default: int = 100
    unmatched: int | None = None

    def __post_init__(self) -> None:
        for role, limit in self.quotas.items():
            if not role or limit < 1:
                raise ConfigInvalid(f"invalid quota {limit!r} for role {role!r}")
        if self.default < 1:
            raise ConfigInvalid("default quota must be >= 1")
        if self.unmatched is not None and self.unmatched < 1:
            raise ConfigInvalid("unmatched quota must be >= 1")
        # Freeze a private copy so later changes to the caller's dict are invisible.
        object.__setattr__(self, "quotas", MappingProxyType(dict(self.quotas)))

    def resolve(self, role: str | None) -> int:
        """Maximum requests for ``role``; ``None`` means unauthenticated."""
        if role is None:
            return self.default
        if role in self.quotas:
            return self.quotas[role]
        return self.unmatched if self.unmatched is not None else self.default
