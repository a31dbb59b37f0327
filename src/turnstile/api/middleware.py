from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
import structlog

from turnstile.api.emitter import rate_limit_headers, rejection_response
from turnstile.api.requester import record_decision, requester_from_request

logger = structlog.get_logger()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Global gate: applies one policy to every request that reaches the app.

    Requests carrying an Authorization header bypass the global gate when
    ``skip_authenticated`` is set; authenticated routes are expected to use
    their own per-route gates.
    """

    def __init__(
        self,
        app,
        policy_id: str,
        skip_authenticated: bool = True,
        exempt_paths: list[str] | None = None,
        trust_forwarded_for: bool = False,
    ):
        super().__init__(app)
        self.policy_id = policy_id
        self.skip_authenticated = skip_authenticated
        self.exempt_paths = frozenset(exempt_paths or ())
        self.trust_forwarded_for = trust_forwarded_for

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            path=request.url.path,
            method=request.method,
        )

        strategy = getattr(request.app.state, "strategy", None)
        registry = getattr(request.app.state, "registry", None)

        if not strategy or not registry:
            logger.warning("middleware_uninitialized_skipping")
            return await call_next(request)

        if request.url.path in self.exempt_paths:
            return await call_next(request)

        if self.skip_authenticated and request.headers.get("Authorization"):
            return await call_next(request)

        policy = registry.get(self.policy_id)
        requester = requester_from_request(request, self.trust_forwarded_for)

        decision = await strategy.check(policy, requester)
        structlog.contextvars.bind_contextvars(client_key=decision.client_key)

        if not decision.allowed:
            return rejection_response(decision, policy)

        # A route gate on the same policy reuses this decision instead of counting twice.
        record_decision(request, decision)

        response = await call_next(request)

        # Per-route gates set their own headers first; keep those.
        for key, value in rate_limit_headers(decision).items():
            response.headers.setdefault(key, value)

        return response
