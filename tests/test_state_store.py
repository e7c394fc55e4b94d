"""Unit tests for the persisted rate limit state store."""

import json

import pytest

from attempt_limiter.adapters.storage.in_memory import InMemoryKeyValueStore
from attempt_limiter.core.errors import StorageAppError
from attempt_limiter.schemas.rate_limit import RateLimitState
from attempt_limiter.services.state_store import RateLimitStateStore, StoreResult


class BrokenStore(InMemoryKeyValueStore):
    async def get_item(self, key: str) -> str | None:
        raise OSError("I/O error")

    async def set_item(self, key: str, value: str) -> None:
        raise StorageAppError(code="storage_write_failed", message="disk full")


class ValueErrorStore(InMemoryKeyValueStore):
    async def get_item(self, key: str) -> str | None:
        raise ValueError("adapter decode failure")

    async def set_item(self, key: str, value: str) -> None:
        raise RuntimeError("keychain locked")

    async def remove_item(self, key: str) -> None:
        raise RuntimeError("keychain locked")


def test_storage_key_is_namespaced() -> None:
    store = RateLimitStateStore(InMemoryKeyValueStore())

    assert store.storage_key("otp_request", "+923001234567") == "rate_limit_otp_request_+923001234567"


def test_custom_key_prefix() -> None:
    store = RateLimitStateStore(InMemoryKeyValueStore(), key_prefix="limits:")

    assert store.storage_key("login_attempt", "user1") == "limits:login_attempt_user1"


def test_store_result_flags() -> None:
    assert StoreResult.success(5).ok is True
    failed = StoreResult.failure(StorageAppError(code="x", message="boom"))
    assert failed.ok is False
    assert failed.value is None


@pytest.mark.asyncio
async def test_save_uses_camel_case_payload(kv_store, state_store) -> None:
    state = RateLimitState(attempts=2, first_attempt_time=1000, blocked_until=None)

    result = await state_store.save("otp_request", "u", state)

    assert result.ok
    payload = json.loads(await kv_store.get_item("rate_limit_otp_request_u"))
    assert payload == {"attempts": 2, "firstAttemptTime": 1000, "blockedUntil": None}


@pytest.mark.asyncio
async def test_load_reads_records_written_by_mobile_client(kv_store, state_store) -> None:
    await kv_store.set_item(
        "rate_limit_login_attempt_user1",
        '{"attempts":5,"firstAttemptTime":1700000000000,"blockedUntil":1700000600000}',
    )

    result = await state_store.load("login_attempt", "user1")

    assert result.ok
    assert result.value == RateLimitState(
        attempts=5, first_attempt_time=1_700_000_000_000, blocked_until=1_700_000_600_000
    )


@pytest.mark.asyncio
async def test_load_missing_record_is_success_with_none(state_store) -> None:
    result = await state_store.load("otp_request", "nobody")

    assert result.ok
    assert result.value is None


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        "[]",
        '{"attempts": -1, "firstAttemptTime": 0}',
        '{"attempts": "many", "firstAttemptTime": 0}',
        '{"attempts": 1}',
    ],
)
@pytest.mark.asyncio
async def test_corrupt_payload_is_reported_as_failure(kv_store, state_store, payload: str) -> None:
    await kv_store.set_item("rate_limit_otp_request_u", payload)

    result = await state_store.load("otp_request", "u")

    assert result.ok is False
    assert result.error.code == "state_corrupted"


@pytest.mark.asyncio
async def test_io_errors_are_returned_not_raised() -> None:
    store = RateLimitStateStore(BrokenStore())

    load = await store.load("otp_request", "u")
    save = await store.save("otp_request", "u", RateLimitState(attempts=1, first_attempt_time=0))

    assert load.ok is False
    assert load.error.code == "storage_io_error"
    assert save.ok is False
    assert save.error.code == "storage_write_failed"


@pytest.mark.asyncio
async def test_clear_removes_record(kv_store, state_store) -> None:
    await state_store.save("otp_request", "u", RateLimitState(attempts=1, first_attempt_time=0))

    result = await state_store.clear("otp_request", "u")

    assert result.ok
    assert len(kv_store) == 0


@pytest.mark.asyncio
async def test_unexpected_adapter_errors_are_returned_not_raised() -> None:
    store = RateLimitStateStore(ValueErrorStore())

    load = await store.load("otp_request", "u")
    save = await store.save("otp_request", "u", RateLimitState(attempts=1, first_attempt_time=0))
    clear = await store.clear("otp_request", "u")

    for result in (load, save, clear):
        assert result.ok is False
        assert result.error.code == "storage_unexpected_error"
    assert load.error.message == "adapter decode failure"
