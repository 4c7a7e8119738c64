"""OTP credential, rate-limit and request/response models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

E164_PATTERN = r"^\+[1-9]\d{1,14}$"


class ConsumeOutcome(str, Enum):
    """Result of a single atomic check-and-consume on the credential store."""

    SUCCESS = "success"
    MISMATCH = "mismatch"
    EXPIRED = "expired"
    ALREADY_CONSUMED = "already_consumed"
    NOT_FOUND = "not_found"
    LOCKED_OUT = "locked_out"


class OtpRecord(BaseModel):
    """Current OTP for one identity. Maps 1:1 to the otp_credentials table."""

    model_config = ConfigDict(frozen=True)

    identity: str
    code_hash: str
    issued_at: datetime
    expires_at: datetime
    attempts_remaining: int
    consumed: bool = False
    version: int = 1

    def is_expired(self, now: datetime) -> bool:
        """A record is expired from its expires_at instant onwards."""
        return now >= self.expires_at

    def is_live(self, now: datetime) -> bool:
        """Unconsumed, unexpired and not locked out."""
        return not self.consumed and self.attempts_remaining > 0 and not self.is_expired(now)


class RateLimitWindow(BaseModel):
    """Per-identity issuance counter for the current window."""

    identity: str
    count: int
    window_start: datetime
    last_issued_at: datetime


class RateLimitDecision(BaseModel):
    """Allowed, or denied with the wait until the next permitted issuance."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    retry_after_seconds: int = 0

    @classmethod
    def allow(cls) -> RateLimitDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, retry_after_seconds: int) -> RateLimitDecision:
        return cls(allowed=False, retry_after_seconds=max(1, retry_after_seconds))


class SendOtpRequest(BaseModel):
    """Request an OTP for a phone number."""

    model_config = ConfigDict(extra="forbid")

    phone: str = Field(..., pattern=E164_PATTERN)


class SendOtpResponse(BaseModel):
    """Response after an OTP was issued. The code itself is never returned."""

    message: str = "OTP sent. Valid for 5 minutes."


class VerifyOtpRequest(BaseModel):
    """Submit an OTP for verification."""

    model_config = ConfigDict(extra="forbid")

    phone: str = Field(..., pattern=E164_PATTERN)
    otp: str = Field(..., min_length=1, max_length=16)


class TokenResponse(BaseModel):
    """Session token issued after successful verification or registration."""

    token: str
