from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    store: str


class PolicyInfo(BaseModel):
    id: str
    window_ms: int
    max_requests: int | None
    role_quotas: dict[str, int] | None
    default_max: int | None
    key_strategy: str
    failure_mode: str


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    store = getattr(request.app.state, "store", None)
    return HealthResponse(
        status="healthy",
        store=store.name if store is not None else "uninitialized",
    )


@router.get("/")
async def root(request: Request):
    return {
        "service": request.app.state.settings.app_name,
        "message": "Rate limiting service is running",
    }


@router.get("/limits", response_model=list[PolicyInfo])
async def list_limits(request: Request):
    return [
        PolicyInfo(
            id=policy.id,
            window_ms=policy.window_ms,
            max_requests=policy.max_requests,
            role_quotas=dict(policy.quota.quotas) if policy.quota else None,
            default_max=policy.quota.default if policy.quota else None,
            key_strategy=policy.key_strategy.value,
            failure_mode=policy.failure_mode.value,
        )
        for policy in request.app.state.registry
    ]
