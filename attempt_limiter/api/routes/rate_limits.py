from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status

from attempt_limiter.core.auth import verify_admin_api_key
from attempt_limiter.core.rate_limit import get_rate_limiter
from attempt_limiter.schemas.rate_limit import DecisionResponse, PolicyResponse
from attempt_limiter.services.rate_limiter import RateLimiter

router = APIRouter(prefix="/rate-limits", tags=["Rate limits"])

Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]
Identifier = Annotated[
    str | None,
    Query(
        description="Subject within the action type (phone number, user id). "
        "Omit to use the default identifier.",
    ),
]


@router.get("/policies", response_model=list[PolicyResponse])
async def list_policies(limiter: Limiter) -> list[PolicyResponse]:
    """List registered policies. Action types not listed are unlimited.

    This path shadows ``GET /{action_type}`` for ``policies``, so that name
    is rejected as an action type.
    """

    return [
        PolicyResponse(action_type=action_type, **policy.model_dump())
        for action_type, policy in sorted(limiter.policies.policies.items())
    ]


@router.get("/{action_type}", response_model=DecisionResponse)
async def check_rate_limit(
    action_type: str,
    limiter: Limiter,
    identifier: Identifier = None,
) -> DecisionResponse:
    """Check whether an attempt of ``action_type`` may proceed now.

    Denied decisions are a normal outcome and come back with HTTP 200;
    callers branch on ``allowed``.
    """
    decision = await limiter.check_rate_limit(action_type, identifier)
    return DecisionResponse(
        action_type=action_type,
        allowed=decision.allowed,
        remaining_attempts=decision.remaining_attempts,
        retry_after_ms=decision.retry_after_ms,
        message=decision.message,
        time_remaining=decision.time_remaining,
    )


@router.post("/{action_type}/attempts", status_code=status.HTTP_204_NO_CONTENT)
async def record_attempt(
    action_type: str,
    limiter: Limiter,
    identifier: Identifier = None,
) -> Response:
    """Record one consumed attempt after a check allowed the action."""

    await limiter.record_attempt(action_type, identifier)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{action_type}/success", status_code=status.HTTP_204_NO_CONTENT)
async def record_success(
    action_type: str,
    limiter: Limiter,
    identifier: Identifier = None,
) -> Response:
    """Forget prior attempts once the gated action succeeded."""

    await limiter.record_success(action_type, identifier)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{action_type}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(verify_admin_api_key)],
)
async def clear_rate_limit(
    action_type: str,
    limiter: Limiter,
    identifier: Identifier = None,
) -> Response:
    """Administrative reset: delete the pair's counters and any block."""

    await limiter.clear_rate_limit(action_type, identifier)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
