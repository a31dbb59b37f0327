"""
Registry of named policies.

All policies come from one table of defaults plus per-policy overrides read
from Settings, so near-identical definitions cannot drift apart.
"""

from collections.abc import Iterator, Mapping
from types import MappingProxyType

from turnstile.config import Settings
from turnstile.core.errors import ConfigInvalid
from turnstile.core.identity import KeyStrategy
from turnstile.core.policy import Policy
from turnstile.core.quota import QuotaRule

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

GLOBAL_POLICY = "global"
DYNAMIC_POLICY = "dynamic"

# id -> (window_ms, max_requests, key_strategy, message); None max means dynamic.
DEFAULT_POLICIES: Mapping[str, tuple[int, int | None, KeyStrategy, str]] = {
    # Window and maximum come from RATE_LIMIT_WINDOW_MS and RATE_LIMIT_MAX_REQUESTS.
    GLOBAL_POLICY: (
        15 * MINUTE_MS,
        1000,
        KeyStrategy.ADDRESS,
        "Too many requests from this IP, please try again later.",
    ),
    "general": (
        15 * MINUTE_MS,
        100,
        KeyStrategy.ADDRESS,
        "Too many requests from this IP, please try again later.",
    ),
    "auth": (
        15 * MINUTE_MS,
        5,
        KeyStrategy.ADDRESS,
        "Too many login attempts, please try again later.",
    ),
    "upload": (
        HOUR_MS,
        10,
        KeyStrategy.ADDRESS,
        "Too many file uploads, please try again later.",
    ),
    "search": (
        5 * MINUTE_MS,
        30,
        KeyStrategy.ADDRESS,
        "Too many search requests, please try again later.",
    ),
    "admin": (
        15 * MINUTE_MS,
        50,
        KeyStrategy.ADDRESS,
        "Too many admin requests, please try again later.",
    ),
    DYNAMIC_POLICY: (
        15 * MINUTE_MS,
        None,
        KeyStrategy.IDENTITY,
        "Rate limit exceeded, please try again later.",
    ),
}


class PolicyRegistry:
    """Read-only lookup of policies by id."""

    def __init__(self, policies: list[Policy]) -> None:
        by_id: dict[str, Policy] = {}
        for policy in policies:
            if policy.id in by_id:
                raise ConfigInvalid(f"duplicate policy id '{policy.id}'")
            by_id[policy.id] = policy
        self._policies = MappingProxyType(by_id)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PolicyRegistry":
        unknown = set(settings.policy_overrides) - set(DEFAULT_POLICIES)
        if unknown:
            raise ConfigInvalid(f"overrides for unknown policies: {sorted(unknown)}")

        quota = QuotaRule(
            quotas=settings.role_quotas,
            default=settings.dynamic_default_max,
            unmatched=settings.dynamic_unmatched_max,
        )

        policies = []
        for policy_id, (window_ms, max_requests, key_strategy, message) in DEFAULT_POLICIES.items():
            fields = {
                "id": policy_id,
                "window_ms": window_ms,
                "max_requests": max_requests,
                "quota": quota if max_requests is None else None,
                "key_strategy": key_strategy,
                "message": message,
            }
            if policy_id == GLOBAL_POLICY:
                fields["window_ms"] = settings.rate_limit_window_ms
                fields["max_requests"] = settings.rate_limit_max_requests
            override = settings.policy_overrides.get(policy_id)
            if override is not None:
                fields.update(override.model_dump(exclude_none=True))
            policies.append(Policy(**fields))

        return cls(policies)

    def get(self, policy_id: str) -> Policy:
        try:
            return self._policies[policy_id]
        except KeyError:
            raise ConfigInvalid(f"unknown policy '{policy_id}'") from None

    def ids(self) -> list[str]:
        return list(self._policies)

    def __contains__(self, policy_id: object) -> bool:
        return policy_id in self._policies

    def __iter__(self) -> Iterator[Policy]:
        return iter(self._policies.values())

    def __len__(self) -> int:
        return len(self._policies)
