"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any import of the settings module so
tests never touch a .env file or the on-disk storage backend.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("RATE_LIMIT_STORAGE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from attempt_limiter.adapters.storage.in_memory import InMemoryKeyValueStore
from attempt_limiter.services.policies import build_policy_registry
from attempt_limiter.services.rate_limiter import RateLimiter
from attempt_limiter.services.state_store import RateLimitStateStore

START_MS = 1_700_000_000_000


class FakeClock:
    """Deterministic millisecond clock."""

    def __init__(self, start: int = START_MS) -> None:
        self.current = start

    def __call__(self) -> int:
        return self.current

    def advance(self, ms: int) -> None:
        self.current += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def state_store(kv_store: InMemoryKeyValueStore) -> RateLimitStateStore:
    return RateLimitStateStore(kv_store)


@pytest.fixture
def limiter(state_store: RateLimitStateStore, clock: FakeClock) -> RateLimiter:
    return RateLimiter(build_policy_registry(), state_store, clock=clock)
