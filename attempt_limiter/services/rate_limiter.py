"""Attempt rate limiter for sensitive operations.

Tracks attempts per (action type, identifier) in a time window and blocks
the pair for the policy's block duration once the window's allowance is used
up. Counters are persisted through ``RateLimitStateStore`` so they survive
restarts.

Usage follows a two-phase protocol::

    decision = await limiter.check_rate_limit("otp_request", phone)
    if decision.allowed:
        await send_otp(phone)
        await limiter.record_attempt("otp_request", phone)
    ...
    await limiter.record_success("otp_request", phone)  # correct OTP entered

``check_rate_limit`` only writes to storage when it transitions a pair into
the blocked state. ``record_attempt`` only increments; the next check acts on
the ceiling.

Every failure mode degrades toward allowing the action: unknown action types
are unlimited and storage errors are logged and treated as "no prior state".

Concurrency: two interleaved check/record sequences for the same key may read
the same prior state and undercount. Pass ``serialize_per_key=True`` to guard
each key's read-modify-write with an ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Callable

from attempt_limiter.core.logging import hash_identifier
from attempt_limiter.schemas.rate_limit import RateLimitPolicy, RateLimitState
from attempt_limiter.services.policies import PolicyRegistry
from attempt_limiter.services.state_store import RateLimitStateStore

logger = logging.getLogger(__name__)

DEFAULT_IDENTIFIER = "default"


def now_ms() -> int:
    """Current UNIX time in whole milliseconds."""

    return int(time.time() * 1000)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def get_time_remaining(retry_after_ms: int) -> str:
    """Format a wait time for display.

    Seconds (rounded up) below one minute, otherwise minutes rounded up.

    Examples:
        >>> get_time_remaining(45000)
        '45 seconds'
        >>> get_time_remaining(125000)
        '3 minutes'
        >>> get_time_remaining(60000)
        '1 minute'
    """

    seconds = math.ceil(retry_after_ms / 1000)
    if seconds < 60:
        return _plural(seconds, "second")
    return _plural(math.ceil(seconds / 60), "minute")


def _blocked_message(retry_after_ms: int) -> str:
    seconds = math.ceil(retry_after_ms / 1000)
    return f"Too many attempts. Please wait {_plural(seconds, 'second')}."


@dataclass(frozen=True)
class RateLimitDecision:
    """Read-only outcome of ``RateLimiter.check_rate_limit``.

    Attributes:
        allowed: Whether the gated action may proceed now.
        remaining_attempts: Attempts left in the current window; None when the
            action type has no policy (unlimited).
        retry_after_ms: Milliseconds until the block lifts; None when allowed.
        message: Human-readable wait message when denied, else empty.
    """

    allowed: bool
    remaining_attempts: int | None
    retry_after_ms: int | None = None
    message: str = ""

    @property
    def unlimited(self) -> bool:
        return self.remaining_attempts is None

    @property
    def time_remaining(self) -> str | None:
        if self.retry_after_ms is None:
            return None
        return get_time_remaining(self.retry_after_ms)


_UNLIMITED = RateLimitDecision(allowed=True, remaining_attempts=None)


class RateLimiter:
    """Decide, record and clear attempts for gated actions.

    The limiter is the sole mutator of persisted state records.
    """

    def __init__(
        self,
        policies: PolicyRegistry,
        state_store: RateLimitStateStore,
        *,
        clock: Callable[[], int] = now_ms,
        default_identifier: str = DEFAULT_IDENTIFIER,
        enabled: bool = True,
        serialize_per_key: bool = False,
    ) -> None:
        """Initialize the limiter.

        Args:
            policies: Registry resolving action types to policies.
            state_store: Persistence for per-pair counters.
            clock: Time source returning UNIX time in milliseconds.
            default_identifier: Identifier used when callers pass none.
            enabled: When False every check is allowed and nothing is recorded.
            serialize_per_key: Guard each key with an asyncio lock.

        Raises:
            ValueError: If default_identifier is empty.
        """
        if not default_identifier:
            raise ValueError("default_identifier must be a non-empty string")

        self._policies = policies
        self._store = state_store
        self._clock = clock
        self._default_identifier = default_identifier
        self._enabled = enabled
        self._serialize = serialize_per_key
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._lock_holders: dict[str, int] = {}

    @property
    def policies(self) -> PolicyRegistry:
        return self._policies

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _resolve_identifier(self, identifier: str | None) -> str:
        return identifier or self._default_identifier

    def _policy(self, action_type: str) -> RateLimitPolicy | None:
        if not self._enabled:
            return None
        return self._policies.policy_for(action_type)

    async def _guard(self, stack: AsyncExitStack, action_type: str, identifier: str) -> None:
        if not self._serialize:
            return

        key = self._store.storage_key(action_type, identifier)
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._lock_holders[key] = self._lock_holders.get(key, 0) + 1
        # Callbacks unwind LIFO: the lock is released before the holder count drops.
        stack.callback(self._release_key_lock, key)
        await stack.enter_async_context(lock)

    def _release_key_lock(self, key: str) -> None:
        holders = self._lock_holders[key] - 1
        if holders:
            self._lock_holders[key] = holders
            return
        del self._lock_holders[key]
        del self._key_locks[key]

    async def _load_current(
        self,
        action_type: str,
        identifier: str,
        policy: RateLimitPolicy,
        now: int,
    ) -> RateLimitState | None:
        """Load state, returning None for absent, unreadable or stale records.

        Active blocks are returned as-is. A record is stale once its window
        has expired or its block has lifted.
        """

        result = await self._store.load(action_type, identifier)
        if not result.ok:
            # Unreadable state counts as no prior attempts.
            return None

        state = result.value
        if state is None or state.is_blocked(now):
            return state

        if state.blocked_until is not None:
            return None
        if now - state.first_attempt_time > policy.window_ms:
            return None
        return state

    async def check_rate_limit(
        self,
        action_type: str,
        identifier: str | None = None,
        *,
        now: int | None = None,
    ) -> RateLimitDecision:
        """Decide whether an attempt may proceed.

        Read-only except for the transition into the blocked state, which is
        persisted so the block survives restarts.

        Args:
            action_type: Category of gated operation (e.g. "otp_request").
            identifier: Subject within the action type; defaults to the
                limiter's default identifier.
            now: Override for the current time in epoch milliseconds.

        Returns:
            RateLimitDecision for the pair.
        """
        policy = self._policy(action_type)
        if policy is None:
            return _UNLIMITED

        identifier = self._resolve_identifier(identifier)
        now = self._clock() if now is None else now

        async with AsyncExitStack() as stack:
            await self._guard(stack, action_type, identifier)
            state = await self._load_current(action_type, identifier, policy, now)

            if state is not None and state.is_blocked(now):
                retry_after_ms = state.blocked_until - now  # type: ignore[operator]
                return RateLimitDecision(
                    allowed=False,
                    remaining_attempts=0,
                    retry_after_ms=retry_after_ms,
                    message=_blocked_message(retry_after_ms),
                )

            attempts = state.attempts if state is not None else 0
            remaining = policy.max_attempts - attempts
            if remaining > 0:
                return RateLimitDecision(allowed=True, remaining_attempts=remaining)

            blocked = RateLimitState(
                attempts=policy.max_attempts,
                first_attempt_time=state.first_attempt_time if state is not None else now,
                blocked_until=now + policy.block_duration_ms,
            )
            await self._store.save(action_type, identifier, blocked)

        logger.warning(
            "rate_limit.blocked",
            extra={
                "action_type": action_type,
                "identifier_hash": hash_identifier(identifier),
                "max_attempts": policy.max_attempts,
                "block_duration_ms": policy.block_duration_ms,
            },
        )
        return RateLimitDecision(
            allowed=False,
            remaining_attempts=0,
            retry_after_ms=policy.block_duration_ms,
            message=_blocked_message(policy.block_duration_ms),
        )

    async def record_attempt(
        self,
        action_type: str,
        identifier: str | None = None,
        *,
        now: int | None = None,
    ) -> None:
        """Count one consumed attempt.

        Call after ``check_rate_limit`` allowed the action. Does not enforce
        the limit itself; attempts made while the pair is blocked are ignored.
        """
        policy = self._policy(action_type)
        if policy is None:
            return

        identifier = self._resolve_identifier(identifier)
        now = self._clock() if now is None else now

        async with AsyncExitStack() as stack:
            await self._guard(stack, action_type, identifier)
            state = await self._load_current(action_type, identifier, policy, now)
            if state is not None and state.is_blocked(now):
                # An active block stays authoritative until it lifts.
                return

            updated = RateLimitState(
                attempts=(state.attempts if state is not None else 0) + 1,
                first_attempt_time=state.first_attempt_time if state is not None else now,
                blocked_until=None,
            )
            await self._store.save(action_type, identifier, updated)

        logger.debug(
            "rate_limit.attempt_recorded",
            extra={
                "action_type": action_type,
                "identifier_hash": hash_identifier(identifier),
                "attempts": updated.attempts,
                "max_attempts": policy.max_attempts,
            },
        )

    async def record_success(self, action_type: str, identifier: str | None = None) -> None:
        """Forget prior attempts after the gated action succeeded."""

        await self.clear_rate_limit(action_type, identifier)

    async def clear_rate_limit(self, action_type: str, identifier: str | None = None) -> None:
        """Delete the pair's record unconditionally, returning it to Fresh."""

        identifier = self._resolve_identifier(identifier)
        async with AsyncExitStack() as stack:
            await self._guard(stack, action_type, identifier)
            result = await self._store.clear(action_type, identifier)

        if result.ok:
            logger.info(
                "rate_limit.cleared",
                extra={
                    "action_type": action_type,
                    "identifier_hash": hash_identifier(identifier),
                },
            )
