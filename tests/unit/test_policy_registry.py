"""
Unit tests for Policy construction, the registry and settings loading.
"""

import json

import pytest

from turnstile.config import PolicyOverride, Settings, load_settings
from turnstile.core.errors import ConfigInvalid
from turnstile.core.identity import KeyStrategy, Requester, client_key
from turnstile.core.policy import FailureMode, Policy
from turnstile.core.quota import QuotaRule
from turnstile.core.registry import HOUR_MS, MINUTE_MS, PolicyRegistry


class TestPolicy:

    def test_static_policy(self) -> None:
        policy = Policy(id="p", window_ms=1_000, max_requests=3, message="slow down")

        assert not policy.is_dynamic
        assert policy.resolve_max("admin") == 3
        assert policy.failure_mode == FailureMode.OPEN

    def test_dynamic_policy_uses_quota(self) -> None:
        policy = Policy(id="d", window_ms=1_000, quota=QuotaRule(default=7), message="m")

        assert policy.is_dynamic
        assert policy.resolve_max("admin") == 200
        assert policy.resolve_max(None) == 7

    def test_policy_is_frozen(self) -> None:
        policy = Policy(id="p", window_ms=1_000, max_requests=3, message="m")

        with pytest.raises(AttributeError):
            policy.max_requests = 10

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"id": "", "window_ms": 1_000, "max_requests": 1, "message": "m"},
            {"id": "a:b", "window_ms": 1_000, "max_requests": 1, "message": "m"},
            {"id": "p", "window_ms": 0, "max_requests": 1, "message": "m"},
            {"id": "p", "window_ms": 1_000, "max_requests": 0, "message": "m"},
            {"id": "p", "window_ms": 1_000, "message": "m"},
            {"id": "p", "window_ms": 1_000, "max_requests": 1, "quota": QuotaRule(), "message": "m"},
            {"id": "p", "window_ms": 1_000, "max_requests": 1, "message": ""},
        ],
    )
    def test_malformed_policy_rejected(self, kwargs) -> None:
        with pytest.raises(ConfigInvalid):
            Policy(**kwargs)


class TestClientKey:

    anonymous = Requester(address="10.0.0.1")
    member = Requester(address="10.0.0.1", account_id="42", role="student")

    def test_address_strategy_ignores_identity(self) -> None:
        assert client_key(KeyStrategy.ADDRESS, self.member) == "ip:10.0.0.1"

    def test_identity_strategy_uses_account(self) -> None:
        assert client_key(KeyStrategy.IDENTITY, self.member) == "user:42"

    def test_identity_strategy_falls_back_to_address(self) -> None:
        assert client_key(KeyStrategy.IDENTITY, self.anonymous) == "ip:10.0.0.1"

    def test_composite_strategy(self) -> None:
        assert client_key(KeyStrategy.COMPOSITE, self.member) == "user:42|ip:10.0.0.1"
        assert client_key(KeyStrategy.COMPOSITE, self.anonymous) == "ip:10.0.0.1"


class TestRegistryDefaults:

    @pytest.fixture
    def registry(self) -> PolicyRegistry:
        return PolicyRegistry.from_settings(Settings(_env_file=None))

    def test_contains_all_named_policies(self, registry: PolicyRegistry) -> None:
        assert set(registry.ids()) == {"global", "general", "auth", "upload", "search", "admin", "dynamic"}
        assert len(registry) == 7

    @pytest.mark.parametrize(
        ("policy_id", "window_ms", "max_requests"),
        [
            ("general", 15 * MINUTE_MS, 100),
            ("auth", 15 * MINUTE_MS, 5),
            ("upload", HOUR_MS, 10),
            ("search", 5 * MINUTE_MS, 30),
            ("admin", 15 * MINUTE_MS, 50),
        ],
    )
    def test_static_defaults(self, registry, policy_id, window_ms, max_requests) -> None:
        policy = registry.get(policy_id)

        assert policy.window_ms == window_ms
        assert policy.max_requests == max_requests

    def test_dynamic_default(self, registry: PolicyRegistry) -> None:
        policy = registry.get("dynamic")

        assert policy.is_dynamic
        assert policy.window_ms == 15 * MINUTE_MS
        assert policy.key_strategy == KeyStrategy.IDENTITY
        assert policy.resolve_max(None) == 100

    def test_unknown_policy_is_config_error(self, registry: PolicyRegistry) -> None:
        with pytest.raises(ConfigInvalid):
            registry.get("nope")


class TestRegistryOverrides:

    def test_override_applies_only_given_fields(self) -> None:
        settings = Settings(
            _env_file=None,
            policy_overrides={
                "auth": PolicyOverride(max_requests=3, failure_mode=FailureMode.CLOSED),
            },
        )

        auth = PolicyRegistry.from_settings(settings).get("auth")

        assert auth.max_requests == 3
        assert auth.failure_mode == FailureMode.CLOSED
        assert auth.window_ms == 15 * MINUTE_MS
        assert auth.message == "Too many login attempts, please try again later."

    def test_role_quotas_and_defaults_feed_dynamic_policy(self) -> None:
        settings = Settings(
            _env_file=None,
            role_quotas={"admin": 500},
            dynamic_default_max=20,
            dynamic_unmatched_max=30,
        )

        dynamic = PolicyRegistry.from_settings(settings).get("dynamic")

        assert dynamic.resolve_max("admin") == 500
        assert dynamic.resolve_max("student") == 30
        assert dynamic.resolve_max(None) == 20

    def test_unknown_override_is_rejected(self) -> None:
        settings = Settings(_env_file=None, policy_overrides={"bogus": PolicyOverride(max_requests=1)})

        with pytest.raises(ConfigInvalid):
            PolicyRegistry.from_settings(settings)

    def test_static_max_on_dynamic_policy_is_rejected(self) -> None:
        settings = Settings(_env_file=None, policy_overrides={"dynamic": PolicyOverride(max_requests=1)})

        with pytest.raises(ConfigInvalid):
            PolicyRegistry.from_settings(settings)

    def test_invalid_role_quota_is_rejected(self) -> None:
        settings = Settings(_env_file=None, role_quotas={"admin": 0})

        with pytest.raises(ConfigInvalid):
            PolicyRegistry.from_settings(settings)

    def test_duplicate_ids_rejected(self) -> None:
        policy = Policy(id="p", window_ms=1_000, max_requests=1, message="m")

        with pytest.raises(ConfigInvalid):
            PolicyRegistry([policy, policy])


class TestSettings:

    def test_overrides_read_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv(
            "POLICY_OVERRIDES",
            json.dumps({"search": {"window_ms": 1000, "max_requests": 2}}),
        )
        monkeypatch.setenv("ROLE_QUOTAS", json.dumps({"admin": 7}))

        settings = load_settings(_env_file=None)

        assert settings.policy_overrides["search"].max_requests == 2
        assert settings.role_quotas == {"admin": 7}

    def test_invalid_values_raise_config_invalid(self, monkeypatch) -> None:
        monkeypatch.setenv("STORE_TIMEOUT_MS", "0")

        with pytest.raises(ConfigInvalid):
            load_settings(_env_file=None)

    def test_unknown_override_field_raises_config_invalid(self, monkeypatch) -> None:
        monkeypatch.setenv("POLICY_OVERRIDES", json.dumps({"auth": {"burst": 3}}))

        with pytest.raises(ConfigInvalid):
            load_settings(_env_file=None)


class TestGlobalPolicy:

    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)
        policy = PolicyRegistry.from_settings(settings).get("global")

        assert settings.global_policy == "global"
        assert policy.window_ms == 15 * MINUTE_MS
        assert policy.max_requests == 1000
        assert policy.key_strategy == KeyStrategy.ADDRESS

    def test_read_from_rate_limit_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("RATE_LIMIT_WINDOW_MS", "60000")
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "250")

        policy = PolicyRegistry.from_settings(load_settings(_env_file=None)).get("global")

        assert policy.window_ms == 60_000
        assert policy.max_requests == 250

    def test_distinct_from_general(self) -> None:
        registry = PolicyRegistry.from_settings(Settings(_env_file=None))

        assert registry.get("general").max_requests == 100
        assert registry.get("global") is not registry.get("general")
