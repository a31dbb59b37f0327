from functools import lru_cache

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from turnstile.core.errors import ConfigInvalid
from turnstile.core.identity import KeyStrategy
from turnstile.core.policy import FailureMode
from turnstile.core.quota import DEFAULT_ROLE_QUOTAS


class PolicyOverride(BaseModel):
    window_ms: int | None = Field(default=None, gt=0)
    max_requests: int | None = Field(default=None, gt=0)
    key_strategy: KeyStrategy | None = None
    failure_mode: FailureMode | None = None
    message: str | None = Field(default=None, min_length=1)

    model_config = {"extra": "forbid"}


class Settings(BaseSettings):
    app_name: str = "Turnstile API"
    log_level: str = "INFO"
    json_logs: bool = True

    # Counter store; no URL means a process-local store.
    redis_url: str | None = None
    redis_key_prefix: str = "turnstile:"
    store_timeout_ms: int = Field(default=50, gt=0)

    # Global gate applied by the middleware; empty string disables it.
    global_policy: str = "global"
    rate_limit_window_ms: int = Field(default=15 * 60 * 1000, gt=0)
    rate_limit_max_requests: int = Field(default=1000, gt=0)
    global_skip_authenticated: bool = True
    exempt_paths: list[str] = ["/health"]
    trust_forwarded_for: bool = False

    policy_overrides: dict[str, PolicyOverride] = {}
    role_quotas: dict[str, int] = dict(DEFAULT_ROLE_QUOTAS)
    dynamic_default_max: int = Field(default=100, gt=0)
    dynamic_unmatched_max: int | None = Field(default=None, gt=0)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


def load_settings(**overrides) -> Settings:
    """Build settings, turning validation failures into ConfigInvalid."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigInvalid(f"invalid settings: {exc}") from exc


@lru_cache
def get_settings() -> Settings:
    return load_settings()
