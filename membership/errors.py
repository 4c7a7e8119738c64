"""
Error taxonomy for OTP authentication and referral attribution.

Only RateLimitExceeded and VerificationFailed ever reach the web layer.
The referral errors are raised and resolved inside the referral service.
"""

from __future__ import annotations

from membership.models.otp import ConsumeOutcome


class RateLimitExceeded(Exception):
    """OTP issuance denied by the per-identity send policy."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Too many OTP requests. Retry after {retry_after_seconds}s.")


class VerificationFailed(Exception):
    """
    A submitted OTP was not accepted.

    The outcome is kept for logging only; callers must present every
    outcome to the end user as the same failure.
    """

    def __init__(self, outcome: ConsumeOutcome):
        self.outcome = outcome
        super().__init__("Invalid or expired OTP")


class SelfReferralRejected(Exception):
    """A user tried to attribute a referral to themselves."""


class ReferralCodeUnresolved(Exception):
    """A referral code did not match any account."""


class CodeSpaceExhausted(RuntimeError):
    """No unused referral code could be generated within the retry ceiling."""


class ReferralCodeTaken(Exception):
    """Account store rejected a referral code that is already assigned."""


class PhoneAlreadyRegistered(Exception):
    """Account store rejected a phone number that already has an account."""
