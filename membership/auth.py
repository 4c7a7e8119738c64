"""
Session tokens for the membership backend.

JWT issuance after OTP verification or registration, and the request
dependency that resolves the bearer token back to an account.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, Header, HTTPException, Request, status

from membership.config import settings
from membership.models.user import Account
from membership.services.container import Services


def create_jwt(user_id: UUID, phone: str) -> str:
    """
    Create a JWT for a member session.

    Args:
        user_id: Account UUID to encode in the token
        phone: Verified phone number, carried as a claim

    Returns:
        Signed JWT string
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "phone": phone,
        "exp": now + timedelta(hours=settings.JWT_EXPIRY_HOURS),
        "iat": now,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_jwt(token: str) -> dict:
    """
    Decode and verify a JWT.

    Args:
        token: JWT string to decode

    Returns:
        Decoded payload

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please sign in again.",
        ) from e
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token. Please sign in again.",
        ) from e


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the process-wide service graph."""
    return request.app.state.services


async def get_current_account(
    services: Annotated[Services, Depends(get_services)],
    authorization: Annotated[str | None, Header()] = None,
) -> Account:
    """
    FastAPI dependency to get the current authenticated account.

    Args:
        services: Service graph
        authorization: "Bearer <jwt>" header

    Returns:
        Current authenticated Account

    Raises:
        HTTPException: If authentication fails
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    payload = decode_jwt(authorization.removeprefix("Bearer "))
    try:
        user_id = UUID(payload.get("sub", ""))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token. Please sign in again.",
        ) from e

    account = await services.accounts.get(user_id)
    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found. Please sign in again.",
        )
    return account
