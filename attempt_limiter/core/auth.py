"""Admin API key authentication.

Clearing a rate limit lifts a block, so the endpoint doing it is guarded by
an API key. Keys are validated against a comma-separated list from
environment variables.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header, HTTPException, status

from attempt_limiter.core.config import settings
from attempt_limiter.core.errors import AuthenticationAppError
from attempt_limiter.core.logging import hash_identifier

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_api_key(provided_key: str) -> None:
    """Validate that provided API key matches configured keys.

    Args:
        provided_key: API key to validate.

    Raises:
        AuthenticationAppError: If the key is invalid, or authentication is
            required but no keys are configured.
    """
    if not settings.app.api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.api_keys)

    if not valid_keys:
        logger.error(
            "auth.keys_not_configured",
            extra={"auth_required": True},
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "auth.invalid_key",
            extra={"api_key_hash": hash_identifier(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_admin_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency guarding administrative endpoints.

    Usage:
        @router.delete("/rate-limits/{action_type}", dependencies=[Depends(verify_admin_api_key)])

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.api_key_required:
        logger.debug("auth.skipped", extra={"reason": "auth_required_false"})
        return

    if not x_api_key:
        logger.warning("auth.missing_key", extra={"api_key_present": False})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.info(
        "auth.success",
        extra={"api_key_hash": hash_identifier(x_api_key)},
    )
