from fastapi import Request, Response

from turnstile.api.emitter import rate_limit_headers
from turnstile.api.requester import counted_decision, record_decision, requester_from_request
from turnstile.core.errors import ConfigInvalid, LimitExceeded
from turnstile.core.registry import DEFAULT_POLICIES
from turnstile.core.strategies.base import Decision


def rate_limit(policy_id: str):
    """
    Per-route gate for FastAPI.

    Usage:
        @router.post("/auth/login", dependencies=[Depends(rate_limit("auth"))])

    Denials raise LimitExceeded, rendered as 429 by the app's exception
    handler. The policy id is checked when the route is declared. A policy
    already counted for this request (by the global gate) is not counted
    again.
    """
    if policy_id not in DEFAULT_POLICIES:
        raise ConfigInvalid(f"unknown policy '{policy_id}'")

    async def dependency(request: Request, response: Response) -> Decision:
        decision = counted_decision(request, policy_id)
        if decision is None:
            state = request.app.state
            policy = state.registry.get(policy_id)
            requester = requester_from_request(request, state.settings.trust_forwarded_for)

            decision = await state.strategy.check(policy, requester)
            if not decision.allowed:
                raise LimitExceeded(decision, policy)
            record_decision(request, decision)

        response.headers.update(rate_limit_headers(decision))
        return decision

    return dependency
