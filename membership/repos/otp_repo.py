"""Repository for OTP credentials stored in PostgreSQL."""

from __future__ import annotations

from datetime import timedelta

import asyncpg

from membership.config import settings
from membership.db import system_conn
from membership.models.otp import ConsumeOutcome, OtpRecord
from membership.utils.clock import Clock, utcnow
from membership.utils.code_hash import code_matches, hash_code


def _row_to_otp_record(row: asyncpg.Record) -> OtpRecord:
    """Convert a database row to an OtpRecord model."""
    return OtpRecord(
        identity=row["identity"],
        code_hash=row["code_hash"],
        issued_at=row["issued_at"],
        expires_at=row["expires_at"],
        attempts_remaining=row["attempts_remaining"],
        consumed=row["consumed"],
        version=row["version"],
    )


class OtpRepo:
    """
    All OTP credential database operations.

    Same contract as the in-memory CredentialStore. Atomicity comes from
    the row: put is one upsert, consume locks the row for the length of
    its transaction.
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        hash_secret: str | None = None,
        clock: Clock = utcnow,
    ):
        self.max_attempts = max_attempts or settings.OTP_MAX_ATTEMPTS
        self._secret = hash_secret or settings.OTP_HASH_SECRET
        self._clock = clock

    def matches(self, record: OtpRecord, code: str) -> bool:
        """Check a plaintext code against a record without consuming it."""
        return code_matches(record.identity, code, self._secret, record.code_hash)

    async def put(self, identity: str, code: str, ttl: timedelta) -> OtpRecord:
        """
        Store a fresh OTP, replacing any previous record for the identity.

        Args:
            identity: Phone number
            code: Plaintext code (only its digest is stored)
            ttl: Lifetime of the code

        Returns:
            The new record
        """
        now = self._clock()
        async with system_conn() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO otp_credentials (
                    identity, code_hash, issued_at, expires_at,
                    attempts_remaining, consumed, version
                )
                VALUES ($1, $2, $3, $4, $5, false, 1)
                ON CONFLICT (identity) DO UPDATE SET
                    code_hash = EXCLUDED.code_hash,
                    issued_at = EXCLUDED.issued_at,
                    expires_at = EXCLUDED.expires_at,
                    attempts_remaining = EXCLUDED.attempts_remaining,
                    consumed = false,
                    version = otp_credentials.version + 1
                RETURNING *
                """,
                identity,
                hash_code(identity, code, self._secret),
                now,
                now + ttl,
                self.max_attempts,
            )
            return _row_to_otp_record(row)

    async def consume(self, identity: str, code: str) -> ConsumeOutcome:
        """
        Atomically validate and invalidate the identity's OTP.

        Args:
            identity: Phone number
            code: Submitted plaintext code

        Returns:
            ConsumeOutcome describing what happened
        """
        async with system_conn() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM otp_credentials WHERE identity = $1 FOR UPDATE",
                identity,
            )
            if row is None:
                return ConsumeOutcome.NOT_FOUND

            record = _row_to_otp_record(row)
            if record.consumed:
                return ConsumeOutcome.ALREADY_CONSUMED
            if record.is_expired(self._clock()):
                return ConsumeOutcome.EXPIRED
            if record.attempts_remaining <= 0:
                return ConsumeOutcome.LOCKED_OUT

            if not self.matches(record, code):
                await conn.execute(
                    """
                    UPDATE otp_credentials
                    SET attempts_remaining = attempts_remaining - 1, version = version + 1
                    WHERE identity = $1
                    """,
                    identity,
                )
                return ConsumeOutcome.MISMATCH

            await conn.execute(
                "UPDATE otp_credentials SET consumed = true, version = version + 1 WHERE identity = $1",
                identity,
            )
            return ConsumeOutcome.SUCCESS

    async def get(self, identity: str) -> OtpRecord | None:
        """
        Get the current record for an identity.

        Args:
            identity: Phone number

        Returns:
            OtpRecord if one exists, None otherwise
        """
        async with system_conn() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM otp_credentials WHERE identity = $1",
                identity,
            )
            return _row_to_otp_record(row) if row else None

    async def invalidate(self, identity: str) -> bool:
        """
        Delete the identity's record.

        Returns:
            True if a record was deleted
        """
        async with system_conn() as conn:
            result = await conn.execute(
                "DELETE FROM otp_credentials WHERE identity = $1",
                identity,
            )
            return result == "DELETE 1"

    async def cleanup_expired(self) -> int:
        """
        Delete records that can no longer be verified. Safe to run from background task.

        Returns:
            Number of rows deleted
        """
        async with system_conn() as conn:
            result = await conn.execute(
                """
                DELETE FROM otp_credentials
                WHERE consumed = true OR attempts_remaining <= 0 OR expires_at <= $1
                """,
                self._clock(),
            )
            # asyncpg returns "DELETE N" string
            parts = result.split()
            return int(parts[1]) if len(parts) == 2 else 0
