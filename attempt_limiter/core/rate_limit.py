"""Rate limiter wiring for FastAPI.

This module builds the process-wide limiter from settings and exposes it as
a dependency, plus a dependency factory that gates a route on an action
type's allowance.

Design goals:
- Minimal coupling: routes depend on dependency functions only, so tests can
  swap the limiter through ``app.dependency_overrides``.
- Swap-friendly: the storage backend is chosen by configuration.
- Fail-open: a disabled limiter or unknown action type never blocks.
"""

from __future__ import annotations

import logging
import math
from typing import Annotated, Awaitable, Callable

from fastapi import Depends, Header, HTTPException, status

from attempt_limiter.adapters.storage.factory import create_key_value_store
from attempt_limiter.core.config import RateLimitSettings, settings
from attempt_limiter.core.logging import hash_identifier
from attempt_limiter.services.policies import build_policy_registry
from attempt_limiter.services.rate_limiter import RateLimiter
from attempt_limiter.services.state_store import RateLimitStateStore

logger = logging.getLogger(__name__)


_limiter: RateLimiter | None = None
_limiter_config: str | None = None


def build_rate_limiter(rate_limit_settings: RateLimitSettings | None = None) -> RateLimiter:
    """Construct a limiter (registry, state store and backend) from settings."""

    cfg = rate_limit_settings or settings.rate_limit
    state_store = RateLimitStateStore(
        create_key_value_store(cfg),
        key_prefix=cfg.key_prefix,
    )
    return RateLimiter(
        build_policy_registry(cfg.policy_overrides),
        state_store,
        default_identifier=cfg.default_identifier,
        enabled=cfg.enabled,
        serialize_per_key=cfg.serialize_per_key,
    )


def get_rate_limiter() -> RateLimiter:
    """Return a process-wide rate limiter instance.

    The instance is cached in-module to preserve state (and per-key locks)
    across requests. If configuration changes (primarily in tests), the
    limiter is rebuilt.

    Returns:
        RateLimiter: Configured limiter instance.
    """

    global _limiter, _limiter_config

    config = settings.rate_limit.model_dump_json()

    if _limiter is None or _limiter_config != config:
        _limiter = build_rate_limiter(settings.rate_limit)
        _limiter_config = config
        logger.info(
            "rate_limit.limiter_built",
            extra={
                "backend": settings.rate_limit.storage_backend,
                "enabled": settings.rate_limit.enabled,
                "action_types": sorted(_limiter.policies.policies),
            },
        )

    return _limiter


def reset_rate_limiter() -> None:
    """Drop the cached limiter so the next call rebuilds it."""

    global _limiter, _limiter_config
    _limiter = None
    _limiter_config = None


def enforce_attempt_limit(action_type: str) -> Callable[..., Awaitable[None]]:
    """Build a dependency that rejects requests while action_type is blocked.

    The dependency only checks. The route records the attempt once the gated
    work has actually been performed.

    Usage:
        @router.post("/otp", dependencies=[Depends(enforce_attempt_limit("otp_request"))])

    Args:
        action_type: Action type whose policy gates the route.

    Returns:
        Async dependency reading the subject from the X-Rate-Limit-Identifier header.
    """

    async def dependency(
        limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
        x_rate_limit_identifier: Annotated[
            str | None, Header(alias="X-Rate-Limit-Identifier")
        ] = None,
    ) -> None:
        decision = await limiter.check_rate_limit(action_type, x_rate_limit_identifier)
        if decision.allowed:
            return

        retry_after_ms = decision.retry_after_ms or 0
        logger.warning(
            "rate_limit.rejected",
            extra={
                "action_type": action_type,
                "identifier_hash": hash_identifier(
                    x_rate_limit_identifier or settings.rate_limit.default_identifier
                ),
                "retry_after_ms": retry_after_ms,
            },
        )

        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=decision.message,
            headers={
                "Retry-After": str(math.ceil(retry_after_ms / 1000)),
                "X-RateLimit-Remaining": "0",
            },
        )

    return dependency
