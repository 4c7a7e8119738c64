"""Account models for registration and session lookups."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from membership.models.otp import E164_PATTERN


class Account(BaseModel):
    """Core account model. Represents a row in the users table."""

    id: UUID
    phone: str
    full_name: str
    email: EmailStr | None = None
    referral_code: str
    referred_by_code: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime

    @property
    def membership_id(self) -> str:
        """Human-facing member number derived from the account id."""
        return "MBR" + self.id.hex.upper()


class RegisterRequest(BaseModel):
    """Create an account for a phone proven by an OTP, optionally crediting a referrer."""

    model_config = ConfigDict(extra="forbid")

    phone: str = Field(..., pattern=E164_PATTERN)
    otp: str = Field(..., min_length=1, max_length=16)
    full_name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    referral_code: str | None = Field(default=None, max_length=32)


class RegisterResponse(BaseModel):
    """Returned after registration."""

    token: str
    membership_id: str
    referral_code: str
    message: str = "Registration successful. Welcome!"


class CheckUserResponse(BaseModel):
    exists: bool


class AccountPublic(BaseModel):
    """What the API returns for the current account."""

    id: UUID
    full_name: str
    phone: str
    email: EmailStr | None
    membership_id: str
    referral_code: str
    verified_referrals: int
    last_login_at: datetime | None
    created_at: datetime

    @classmethod
    def from_account(cls, account: Account, verified_referrals: int) -> AccountPublic:
        """Convert internal Account model to public API response."""
        return cls(
            id=account.id,
            full_name=account.full_name,
            phone=account.phone,
            email=account.email,
            membership_id=account.membership_id,
            referral_code=account.referral_code,
            verified_referrals=verified_referrals,
            last_login_at=account.last_login_at,
            created_at=account.created_at,
        )
