"""
In-memory OTP credential store.

One record per identity. Every read-modify-write runs under that
identity's lock and never awaits while holding it, so each operation is
atomic for event-loop tasks and worker threads alike.
"""

from __future__ import annotations

import threading
from datetime import timedelta

from membership.config import settings
from membership.models.otp import ConsumeOutcome, OtpRecord
from membership.utils.clock import Clock, utcnow
from membership.utils.code_hash import code_matches, hash_code
from membership.utils.locks import StripedLocks


class CredentialStore:
    """Current OTP per phone number, with expiry and single-use consumption."""

    def __init__(
        self,
        max_attempts: int | None = None,
        hash_secret: str | None = None,
        clock: Clock = utcnow,
    ):
        self.max_attempts = max_attempts or settings.OTP_MAX_ATTEMPTS
        self._secret = hash_secret or settings.OTP_HASH_SECRET
        self._clock = clock
        self._records: dict[str, OtpRecord] = {}
        self._locks = StripedLocks()

    def _lock_for(self, identity: str) -> threading.Lock:
        return self._locks.for_key(identity)

    def matches(self, record: OtpRecord, code: str) -> bool:
        """Check a plaintext code against a record without consuming it."""
        return code_matches(record.identity, code, self._secret, record.code_hash)

    async def put(self, identity: str, code: str, ttl: timedelta) -> OtpRecord:
        """
        Store a fresh OTP, replacing any previous record for the identity.

        Args:
            identity: Phone number
            code: Plaintext code (only its digest is kept)
            ttl: Lifetime of the code

        Returns:
            The new record
        """
        now = self._clock()
        with self._lock_for(identity):
            previous = self._records.get(identity)
            record = OtpRecord(
                identity=identity,
                code_hash=hash_code(identity, code, self._secret),
                issued_at=now,
                expires_at=now + ttl,
                attempts_remaining=self.max_attempts,
                consumed=False,
                version=previous.version + 1 if previous else 1,
            )
            self._records[identity] = record
            return record

    async def consume(self, identity: str, code: str) -> ConsumeOutcome:
        """
        Atomically validate and invalidate the identity's OTP.

        A wrong code costs one attempt; the attempt that brings the count to
        zero still reports MISMATCH, every later call reports LOCKED_OUT
        until a new code is put.

        Args:
            identity: Phone number
            code: Submitted plaintext code

        Returns:
            ConsumeOutcome describing what happened
        """
        with self._lock_for(identity):
            record = self._records.get(identity)
            if record is None:
                return ConsumeOutcome.NOT_FOUND
            if record.consumed:
                return ConsumeOutcome.ALREADY_CONSUMED
            if record.is_expired(self._clock()):
                return ConsumeOutcome.EXPIRED
            if record.attempts_remaining <= 0:
                return ConsumeOutcome.LOCKED_OUT

            if not self.matches(record, code):
                self._records[identity] = record.model_copy(
                    update={
                        "attempts_remaining": record.attempts_remaining - 1,
                        "version": record.version + 1,
                    }
                )
                return ConsumeOutcome.MISMATCH

            self._records[identity] = record.model_copy(
                update={"consumed": True, "version": record.version + 1}
            )
            return ConsumeOutcome.SUCCESS

    async def get(self, identity: str) -> OtpRecord | None:
        """Current record for an identity, live or not."""
        with self._lock_for(identity):
            return self._records.get(identity)

    async def invalidate(self, identity: str) -> bool:
        """
        Drop the identity's record.

        Returns:
            True if a record existed
        """
        with self._lock_for(identity):
            return self._records.pop(identity, None) is not None

    async def cleanup_expired(self) -> int:
        """
        Remove records that can no longer be verified.

        Returns:
            Number of records removed
        """
        now = self._clock()
        removed = 0
        for identity in list(self._records):
            with self._lock_for(identity):
                record = self._records.get(identity)
                if record is None or record.is_live(now):
                    continue
                del self._records[identity]
                removed += 1
        return removed
