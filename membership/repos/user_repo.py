"""Repository for account operations."""

from __future__ import annotations

from uuid import UUID

import asyncpg

from membership.db import system_conn
from membership.errors import PhoneAlreadyRegistered, ReferralCodeTaken
from membership.models.user import Account
from membership.utils.clock import utcnow


def _row_to_account(row: asyncpg.Record) -> Account:
    """Convert a database row to an Account model."""
    return Account(
        id=row["id"],
        phone=row["phone"],
        full_name=row["full_name"],
        email=row["email"],
        referral_code=row["referral_code"],
        referred_by_code=row["referred_by_code"],
        last_login_at=row["last_login_at"],
        created_at=row["created_at"],
    )


class UserRepo:
    """All account-related database operations."""

    async def get(self, user_id: UUID) -> Account | None:
        """
        Get an account by ID.

        Args:
            user_id: User UUID

        Returns:
            Account if found, None otherwise
        """
        async with system_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
            return _row_to_account(row) if row else None

    async def get_by_phone(self, phone: str) -> Account | None:
        """
        Get an account by phone number.
        Used during OTP verification, before a session exists.

        Args:
            phone: E.164 phone number

        Returns:
            Account if found, None otherwise
        """
        async with system_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE phone = $1", phone)
            return _row_to_account(row) if row else None

    async def get_by_referral_code(self, code: str) -> Account | None:
        async with system_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE referral_code = $1", code)
            return _row_to_account(row) if row else None

    async def exists_by_phone(self, phone: str) -> bool:
        async with system_conn() as conn:
            return await conn.fetchval("SELECT EXISTS (SELECT 1 FROM users WHERE phone = $1)", phone)

    async def create(
        self,
        phone: str,
        full_name: str,
        email: str | None,
        referral_code: str,
    ) -> Account:
        """
        Create a new account.

        Args:
            phone: E.164 phone number
            full_name: Display name
            email: Contact email
            referral_code: Pre-generated referral code for this account

        Returns:
            Newly created Account

        Raises:
            PhoneAlreadyRegistered: If the phone already has an account
            ReferralCodeTaken: If the referral code is already assigned
        """
        try:
            async with system_conn() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO users (phone, full_name, email, referral_code)
                    VALUES ($1, $2, $3, $4)
                    RETURNING *
                    """,
                    phone,
                    full_name,
                    email,
                    referral_code,
                )
                return _row_to_account(row)
        except asyncpg.UniqueViolationError as e:
            if e.constraint_name == "users_referral_code_unique":
                raise ReferralCodeTaken(referral_code) from e
            raise PhoneAlreadyRegistered(phone) from e

    async def set_referred_by(self, user_id: UUID, referral_code: str) -> bool:
        """
        Record which referral code an account signed up with. First write wins.

        Returns:
            True if the code was stored, False if one was already set
        """
        async with system_conn() as conn:
            result = await conn.execute(
                """
                UPDATE users SET referred_by_code = $2
                WHERE id = $1 AND referred_by_code IS NULL
                """,
                user_id,
                referral_code,
            )
            return result == "UPDATE 1"

    async def touch_last_login(self, user_id: UUID) -> None:
        async with system_conn() as conn:
            await conn.execute(
                "UPDATE users SET last_login_at = $2 WHERE id = $1",
                user_id,
                utcnow(),
            )
