"""
Pydantic models for the membership backend.

All data shapes defined here. No imports from db, repos, or routes.
"""

from membership.models.otp import (
    ConsumeOutcome,
    OtpRecord,
    RateLimitDecision,
    RateLimitWindow,
    SendOtpRequest,
    SendOtpResponse,
    TokenResponse,
    VerifyOtpRequest,
)
from membership.models.referral import ReferralEvent, ReferralEventKind
from membership.models.user import (
    Account,
    AccountPublic,
    CheckUserResponse,
    RegisterRequest,
    RegisterResponse,
)

__all__ = [
    # OTP models
    "ConsumeOutcome",
    "OtpRecord",
    "RateLimitDecision",
    "RateLimitWindow",
    "SendOtpRequest",
    "SendOtpResponse",
    "VerifyOtpRequest",
    "TokenResponse",
    # Referral models
    "ReferralEvent",
    "ReferralEventKind",
    # Account models
    "Account",
    "AccountPublic",
    "CheckUserResponse",
    "RegisterRequest",
    "RegisterResponse",
]
