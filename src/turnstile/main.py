from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from redis.asyncio import from_url

from turnstile.api.emitter import limit_exceeded_handler
from turnstile.api.middleware import RateLimitMiddleware
from turnstile.api.routes import router
from turnstile.config import Settings, get_settings
from turnstile.core.backends.base import CounterStore
from turnstile.core.backends.memory import InMemoryCounterStore
from turnstile.core.backends.redis import RedisCounterStore
from turnstile.core.errors import LimitExceeded
from turnstile.core.logging import setup_logging
from turnstile.core.registry import PolicyRegistry
from turnstile.core.strategies.fixed_window import FixedWindowStrategy

logger = structlog.get_logger()


def build_store(settings: Settings) -> CounterStore:
    """Redis when a URL is configured, otherwise a process-local store."""
    if not settings.redis_url:
        logger.warning("redis_url_missing_using_memory_store")
        return InMemoryCounterStore()

    timeout = settings.store_timeout_ms / 1000
    redis_client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
    return RedisCounterStore(
        redis_client,
        timeout_ms=settings.store_timeout_ms,
        prefix=settings.redis_key_prefix,
    )


def create_app(settings: Settings | None = None, store: CounterStore | None = None) -> FastAPI:
    """
    Build the application.

    Policies are resolved here, before anything is served: an invalid
    configuration raises ConfigInvalid and the app never starts.
    """
    settings = settings or get_settings()
    registry = PolicyRegistry.from_settings(settings)
    if settings.global_policy:
        registry.get(settings.global_policy)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifecycle manager.
        Builds the counter store and engine, closes the store on shutdown.
        """
        setup_logging(settings.log_level, json_logs=settings.json_logs, service=settings.app_name)

        owned = store is None
        counter_store = build_store(settings) if owned else store

        app.state.store = counter_store
        app.state.strategy = FixedWindowStrategy(counter_store)

        logger.info("turnstile_started", store=counter_store.name, policies=registry.ids())
        yield

        if owned:
            await counter_store.close()
        logger.info("turnstile_stopped")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = registry

    if settings.global_policy:
        app.add_middleware(
            RateLimitMiddleware,
            policy_id=settings.global_policy,
            skip_authenticated=settings.global_skip_authenticated,
            exempt_paths=settings.exempt_paths,
            trust_forwarded_for=settings.trust_forwarded_for,
        )

    app.add_exception_handler(LimitExceeded, limit_exceeded_handler)
    app.include_router(router)
    return app


app = create_app()
