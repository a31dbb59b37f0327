from collections.abc import Mapping

from fastapi import Request

from turnstile.core.identity import Requester
from turnstile.core.strategies.base import Decision


def _client_address(request: Request, trust_forwarded_for: bool) -> str:
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def requester_from_request(request: Request, trust_forwarded_for: bool = False) -> Requester:
    """
    Build a Requester from the request.

    The authentication layer is expected to leave the caller on
    ``request.state.user`` as an object or mapping exposing ``id`` and
    ``role``. Without it the caller is anonymous.
    """
    address = _client_address(request, trust_forwarded_for)
    user = getattr(request.state, "user", None)
    if user is None:
        return Requester(address=address)

    if isinstance(user, Mapping):
        account_id, role = user.get("id"), user.get("role")
    else:
        account_id, role = getattr(user, "id", None), getattr(user, "role", None)

    return Requester(
        address=address,
        account_id=str(account_id) if account_id is not None else None,
        role=role,
    )


def record_decision(request: Request, decision: Decision) -> None:
    """Remember that ``decision.policy_id`` has been counted for this request."""
    counted = getattr(request.state, "rate_limit_decisions", None)
    if counted is None:
        counted = {}
        request.state.rate_limit_decisions = counted
    counted[decision.policy_id] = decision


def counted_decision(request: Request, policy_id: str) -> Decision | None:
    counted = getattr(request.state, "rate_limit_decisions", None) or {}
    return counted.get(policy_id)
