"""Factory pattern for creating key-value store instances."""

from attempt_limiter.adapters.storage.base import AbstractKeyValueStore
from attempt_limiter.adapters.storage.file_store import JsonFileKeyValueStore
from attempt_limiter.adapters.storage.in_memory import InMemoryKeyValueStore
from attempt_limiter.core.config import RateLimitSettings, settings
from attempt_limiter.core.errors import ValidationAppError


def create_key_value_store(rate_limit_settings: RateLimitSettings | None = None) -> AbstractKeyValueStore:
    """Instantiate the storage backend named in configuration.

    Args:
        rate_limit_settings: Optional settings; defaults to the global settings.

    Returns:
        AbstractKeyValueStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend is unknown or misconfigured.
    """
    cfg = rate_limit_settings or settings.rate_limit
    backend = cfg.storage_backend.lower()

    if backend == "memory":
        return InMemoryKeyValueStore()

    if backend == "file":
        if not cfg.storage_path:
            raise ValidationAppError(
                code="storage_missing_path",
                message="File storage backend requires RATE_LIMIT_STORAGE_PATH",
            )
        return JsonFileKeyValueStore(cfg.storage_path)

    raise ValidationAppError(
        code="storage_unknown_backend",
        message=(
            f"Unknown storage backend: '{backend}'. Supported backends: file, memory"
        ),
        details={"backend": backend},
    )
