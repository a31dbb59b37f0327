"""
Translate decisions into HTTP.

Allowed requests get informational headers; denied requests get a fixed
429 payload plus Retry-After.
"""

import math
from datetime import datetime, timezone

import structlog
from fastapi import Request
from starlette.responses import JSONResponse

from turnstile.core.errors import LimitExceeded
from turnstile.core.policy import Policy
from turnstile.core.strategies.base import Decision

logger = structlog.get_logger()


def rate_limit_headers(decision: Decision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at),
    }


def retry_after_seconds(decision: Decision) -> int:
    """Whole seconds until retry, rounded up and never below 1."""
    return max(1, math.ceil((decision.retry_after_ms or 0) / 1000))


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rejection_response(decision: Decision, policy: Policy, log=None) -> JSONResponse:
    """Build the 429 response and log the denial once."""
    (log or logger).warning(
        "rate_limit_exceeded",
        policy=policy.id,
        client_key=decision.client_key,
        limit=decision.limit,
        degraded=decision.degraded,
    )

    headers = rate_limit_headers(decision)
    headers["Retry-After"] = str(retry_after_seconds(decision))

    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "message": policy.message,
            "timestamp": _timestamp(),
        },
        headers=headers,
    )


async def limit_exceeded_handler(request: Request, exc: LimitExceeded) -> JSONResponse:
    return rejection_response(exc.decision, exc.policy)
