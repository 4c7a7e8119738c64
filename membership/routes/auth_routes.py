"""OTP authentication and registration routes."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from membership.auth import create_jwt, get_current_account, get_services
from membership.errors import CodeSpaceExhausted, PhoneAlreadyRegistered, RateLimitExceeded, VerificationFailed
from membership.models.otp import E164_PATTERN, SendOtpRequest, SendOtpResponse, TokenResponse, VerifyOtpRequest
from membership.models.user import Account, AccountPublic, CheckUserResponse, RegisterRequest, RegisterResponse
from membership.services.container import Services
from membership.services.email import send_welcome_email
from membership.services.referral_service import create_account
from membership.utils.clock import mask_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/otp", tags=["auth"])

ServicesDep = Annotated[Services, Depends(get_services)]


@router.post("/send", status_code=status.HTTP_202_ACCEPTED)
async def send_otp_endpoint(req: SendOtpRequest, services: ServicesDep) -> SendOtpResponse:
    """
    Issue an OTP for a phone number and queue it for SMS delivery.

    Rate limits (per phone):
    - 5 per hour
    - 45 seconds between sends
    """
    try:
        code = await services.otp.issue(req.phone)
    except RateLimitExceeded as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many OTP requests. Try again in {e.retry_after_seconds} seconds.",
            headers={"Retry-After": str(e.retry_after_seconds)},
        ) from e
    except TimeoutError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="OTP service temporarily unavailable. Please try again.",
        ) from e

    sms = services.sms
    phone = req.phone
    services.delivery.enqueue(f"otp-sms:{mask_phone(phone)}", lambda: sms.send_otp(phone, code))

    minutes = max(1, int(services.otp.ttl.total_seconds()) // 60)
    return SendOtpResponse(message=f"OTP sent. Valid for {minutes} minutes.")


@router.post("/verify", status_code=200)
async def verify_otp_endpoint(req: VerifyOtpRequest, services: ServicesDep) -> TokenResponse:
    """
    Verify an OTP and start a session.

    Every kind of failure (wrong, expired, reused, locked out, never sent)
    returns the same 401.
    """
    try:
        await services.otp.require_verified(req.phone, req.otp)
    except VerificationFailed as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired OTP",
        ) from e

    account = await services.accounts.get_by_phone(req.phone)
    if not account:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User does not exist, sign up first",
        )

    await services.accounts.touch_last_login(account.id)
    await services.referrals.attribute_verification(account.id)

    return TokenResponse(token=create_jwt(account.id, account.phone))


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_endpoint(req: RegisterRequest, services: ServicesDep) -> RegisterResponse:
    """
    Register a member, crediting the referrer if a valid code was given.

    The phone must be proven with an OTP from /send, exactly as for /verify.
    The welcome email is queued; its failure never affects registration.
    """
    try:
        await services.otp.require_verified(req.phone, req.otp)
    except VerificationFailed as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired OTP",
        ) from e

    try:
        account = await create_account(services.accounts, req.phone, req.full_name, str(req.email))
    except PhoneAlreadyRegistered as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists",
        ) from e
    except CodeSpaceExhausted as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Registration temporarily unavailable. Please try again.",
        ) from e

    await services.referrals.attribute_signup(account.id, req.referral_code)

    email = str(req.email)
    services.delivery.enqueue(
        f"welcome-email:{account.membership_id}",
        lambda: send_welcome_email(email, account.full_name, account.membership_id, account.referral_code),
    )

    logger.info("Registered %s as %s", mask_phone(account.phone), account.membership_id)
    return RegisterResponse(
        token=create_jwt(account.id, account.phone),
        membership_id=account.membership_id,
        referral_code=account.referral_code,
    )


@router.get("/check-user", status_code=200)
async def check_user_endpoint(
    services: ServicesDep,
    phone: Annotated[str, Query(pattern=E164_PATTERN)],
) -> CheckUserResponse:
    """Tell the client whether to show sign-in or sign-up."""
    return CheckUserResponse(exists=await services.accounts.exists_by_phone(phone))


@router.get("/me", status_code=200)
async def get_current_account_endpoint(
    services: ServicesDep,
    account: Annotated[Account, Depends(get_current_account)],
) -> AccountPublic:
    """
    Get the current member, including their verified referral count.

    Requires a Bearer session token.
    """
    verified = await services.referrals.count_verified_referrals(account.id)
    return AccountPublic.from_account(account, verified_referrals=verified)
