"""Persisted state store for rate limit counters.

Wraps the asynchronous key-value collaborator and (de)serializes
``RateLimitState`` records. Every operation returns a ``StoreResult`` instead
of raising: the limiter must never become a hard failure point for the
feature it protects, so the engine decides how to degrade.

Keys are namespaced as ``{prefix}{action_type}_{identifier}``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import ValidationError

from attempt_limiter.adapters.storage.base import AbstractKeyValueStore
from attempt_limiter.core.errors import AppError, StorageAppError
from attempt_limiter.core.logging import hash_identifier
from attempt_limiter.schemas.rate_limit import RateLimitState

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "rate_limit_"

T = TypeVar("T")


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """Value-or-error outcome of a storage operation.

    Attributes:
        value: Payload on success (None for writes or absent records).
        error: Failure description; None on success.
    """

    value: T | None = None
    error: AppError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "StoreResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AppError) -> "StoreResult[T]":
        return cls(error=error)


class RateLimitStateStore:
    """Serialize and persist per-(action type, identifier) counters.

    The store applies no policy; it only maps state records to storage keys.
    """

    def __init__(
        self,
        kv_store: AbstractKeyValueStore,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        self._kv = kv_store
        self._prefix = key_prefix

    def storage_key(self, action_type: str, identifier: str) -> str:
        return f"{self._prefix}{action_type}_{identifier}"

    async def load(self, action_type: str, identifier: str) -> StoreResult[RateLimitState]:
        """Load the state for a pair.

        Returns:
            Success with the state, success with None when no record exists,
            or a failure when the read or deserialization fails.
        """

        key = self.storage_key(action_type, identifier)
        try:
            payload = await self._kv.get_item(key)
        except Exception as exc:  # noqa: BLE001
            error = _as_storage_error(exc)
            self._log_failure("rate_limit.state_load_failed", action_type, identifier, error)
            return StoreResult.failure(error)

        if payload is None:
            return StoreResult.success(None)

        try:
            state = RateLimitState.from_json(payload)
        except ValidationError as exc:
            error = StorageAppError(
                code="state_corrupted",
                message="Persisted rate limit state could not be decoded",
                details={"hint": f"{exc.error_count()} validation error(s)"},
            )
            self._log_failure("rate_limit.state_corrupted", action_type, identifier, error)
            return StoreResult.failure(error)

        return StoreResult.success(state)

    async def save(
        self, action_type: str, identifier: str, state: RateLimitState
    ) -> StoreResult[None]:
        key = self.storage_key(action_type, identifier)
        try:
            await self._kv.set_item(key, state.to_json())
        except Exception as exc:  # noqa: BLE001
            error = _as_storage_error(exc)
            self._log_failure("rate_limit.state_save_failed", action_type, identifier, error)
            return StoreResult.failure(error)
        return StoreResult.success()

    async def clear(self, action_type: str, identifier: str) -> StoreResult[None]:
        key = self.storage_key(action_type, identifier)
        try:
            await self._kv.remove_item(key)
        except Exception as exc:  # noqa: BLE001
            error = _as_storage_error(exc)
            self._log_failure("rate_limit.state_clear_failed", action_type, identifier, error)
            return StoreResult.failure(error)
        return StoreResult.success()

    @staticmethod
    def _log_failure(event: str, action_type: str, identifier: str, exc: AppError) -> None:
        logger.warning(
            event,
            extra={
                "action_type": action_type,
                "identifier_hash": hash_identifier(identifier),
                "error_code": exc.code,
                "error_message": exc.message,
            },
        )


def _as_storage_error(exc: Exception) -> StorageAppError:
    """Normalize whatever a key-value adapter raised into a StorageAppError."""

    if isinstance(exc, StorageAppError):
        return exc
    code = "storage_io_error" if isinstance(exc, OSError) else "storage_unexpected_error"
    return StorageAppError(code=code, message=str(exc) or type(exc).__name__)
