"""Policy registry mapping action types to their attempt allowance.

A missing policy means the action is unlimited. Forgetting to register an
action type therefore never blocks an unrelated feature.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Mapping

from attempt_limiter.core.errors import ValidationAppError
from attempt_limiter.schemas.rate_limit import RateLimitPolicy

logger = logging.getLogger(__name__)

OTP_REQUEST = "otp_request"
LOGIN_ATTEMPT = "login_attempt"
PASSWORD_RESET = "password_reset"
API_REQUEST = "api_request"

# Shadowed by the literal GET /v1/rate-limits/policies route.
RESERVED_ACTION_TYPES = frozenset({"policies"})

_SECOND_MS = 1000
_MINUTE_MS = 60 * _SECOND_MS

DEFAULT_POLICIES: Mapping[str, RateLimitPolicy] = MappingProxyType(
    {
        OTP_REQUEST: RateLimitPolicy(
            max_attempts=3,
            window_ms=1 * _MINUTE_MS,
            block_duration_ms=1 * _MINUTE_MS,
        ),
        LOGIN_ATTEMPT: RateLimitPolicy(
            max_attempts=5,
            window_ms=5 * _MINUTE_MS,
            block_duration_ms=10 * _MINUTE_MS,
        ),
        PASSWORD_RESET: RateLimitPolicy(
            max_attempts=3,
            window_ms=5 * _MINUTE_MS,
            block_duration_ms=15 * _MINUTE_MS,
        ),
        API_REQUEST: RateLimitPolicy(
            max_attempts=100,
            window_ms=1 * _MINUTE_MS,
            block_duration_ms=1 * _MINUTE_MS,
        ),
    }
)


class PolicyRegistry:
    """Read-only lookup of rate limit policies fixed at construction."""

    def __init__(self, policies: Mapping[str, RateLimitPolicy]) -> None:
        self._policies: Mapping[str, RateLimitPolicy] = MappingProxyType(dict(policies))

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"PolicyRegistry(action_types={sorted(self._policies)})"

    def __contains__(self, action_type: object) -> bool:
        return action_type in self._policies

    def __len__(self) -> int:
        return len(self._policies)

    @property
    def policies(self) -> Mapping[str, RateLimitPolicy]:
        return self._policies

    def policy_for(self, action_type: str) -> RateLimitPolicy | None:
        """Return the policy for action_type, or None when it is unlimited."""

        return self._policies.get(action_type)


def build_policy_registry(
    overrides: Mapping[str, RateLimitPolicy] | None = None,
) -> PolicyRegistry:
    """Build a registry from the default policies overlaid with overrides.

    Args:
        overrides: Policies that replace defaults of the same action type or
            register new action types.

    Returns:
        PolicyRegistry: Registry holding the merged policies.

    Raises:
        ValidationAppError: If an override uses a reserved action type name.
    """

    merged = dict(DEFAULT_POLICIES)
    for action_type, policy in (overrides or {}).items():
        if action_type in RESERVED_ACTION_TYPES:
            raise ValidationAppError(
                code="reserved_action_type",
                message=f"Action type name is reserved: {action_type!r}",
                details={"hint": f"Reserved names: {sorted(RESERVED_ACTION_TYPES)}"},
            )
        if action_type in merged:
            logger.info(
                "rate_limit.policy_overridden",
                extra={
                    "action_type": action_type,
                    "max_attempts": policy.max_attempts,
                    "window_ms": policy.window_ms,
                    "block_duration_ms": policy.block_duration_ms,
                },
            )
        merged[action_type] = policy
    return PolicyRegistry(merged)
