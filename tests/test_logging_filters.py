"""Tests for log redaction and identifier hashing."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from attempt_limiter.core.logging import (
    JsonFormatter,
    SensitiveDataFilter,
    clear_request_id,
    hash_identifier,
    set_request_id,
)


@pytest.fixture
def capture() -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger("test_attempt_limiter_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_identifiers_and_secrets_are_redacted(capture) -> None:
    logger, stream = capture

    logger.info(
        "rate_limit.blocked",
        extra={
            "identifier": "+923001234567",
            "phone": "+923001234567",
            "x-api-key": "admin-secret",
            "action_type": "otp_request",
        },
    )

    output = stream.getvalue()
    assert "+923001234567" not in output
    assert "admin-secret" not in output
    assert "[REDACTED]" in output
    assert json.loads(output)["action_type"] == "otp_request"


def test_nested_sensitive_fields_are_redacted(capture) -> None:
    logger, stream = capture

    logger.info(
        "request",
        extra={"headers": {"authorization": "Bearer abc", "user-agent": "pytest"}},
    )

    output = stream.getvalue()
    assert "Bearer abc" not in output
    assert "pytest" in output


def test_hashed_identifier_passes_through(capture) -> None:
    logger, stream = capture
    digest = hash_identifier("+923001234567")

    logger.info("rate_limit.cleared", extra={"identifier_hash": digest})

    payload = json.loads(stream.getvalue())
    assert payload["identifier_hash"] == digest
    assert payload["message"] == "rate_limit.cleared"


def test_request_id_is_attached_from_context(capture) -> None:
    logger, stream = capture
    set_request_id("req-42")
    try:
        logger.info("rate_limit.checked")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-42"


def test_hash_identifier_is_stable_and_short() -> None:
    assert hash_identifier("user1") == hash_identifier("user1")
    assert hash_identifier("user1") != hash_identifier("user2")
    assert len(hash_identifier("user1")) == 16
