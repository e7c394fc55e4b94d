"""Pydantic models for attempt limiting: policies, persisted state and API payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RateLimitPolicy(BaseModel):
    """Attempt allowance for one action type. All durations in milliseconds."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(..., gt=0, description="Attempts allowed within one window.")
    window_ms: int = Field(..., gt=0, description="Window length in milliseconds.")
    block_duration_ms: int = Field(
        ..., gt=0, description="How long the pair stays blocked once the allowance is used up."
    )


class RateLimitState(BaseModel):
    """Persisted counters for one (action type, identifier) pair.

    Serialized with camelCase keys (``attempts``, ``firstAttemptTime``,
    ``blockedUntil``) so records written by the mobile client stay readable.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    attempts: int = Field(..., ge=0)
    first_attempt_time: int = Field(..., alias="firstAttemptTime")
    blocked_until: int | None = Field(None, alias="blockedUntil")

    def is_blocked(self, now: int) -> bool:
        return self.blocked_until is not None and self.blocked_until > now

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, payload: str) -> "RateLimitState":
        return cls.model_validate_json(payload)


class PolicyResponse(BaseModel):
    """Registered policy as exposed over HTTP."""

    action_type: str = Field(..., description="Action type the policy applies to.")
    max_attempts: int
    window_ms: int
    block_duration_ms: int


class DecisionResponse(BaseModel):
    """Outcome of a rate limit check."""

    action_type: str
    allowed: bool = Field(..., description="Whether the gated action may proceed now.")
    remaining_attempts: int | None = Field(
        None,
        description="Attempts left in the current window; null when the action type is unlimited.",
    )
    retry_after_ms: int | None = Field(
        None, description="Milliseconds until the block lifts (only when denied)."
    )
    message: str = Field("", description="Human-readable wait message when denied.")
    time_remaining: str | None = Field(
        None, description="Wait time formatted for display, e.g. '3 minutes'."
    )
