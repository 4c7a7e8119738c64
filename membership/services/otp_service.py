"""
OTP issuance and verification.

issue() gates on the rate limiter, then replaces the identity's credential.
verify() is the only place where "this phone is verified" becomes a fact
the rest of the system may act on.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import timedelta

from membership.config import settings
from membership.db import bounded
from membership.errors import RateLimitExceeded, VerificationFailed
from membership.middleware.rate_limit import RateLimiter
from membership.models.otp import ConsumeOutcome
from membership.repos.credential_store import CredentialStore
from membership.repos.otp_repo import OtpRepo
from membership.utils.clock import mask_phone

logger = logging.getLogger(__name__)

CredentialBackend = CredentialStore | OtpRepo


class OtpService:
    """Orchestrates the rate limiter and the credential store."""

    def __init__(
        self,
        store: CredentialBackend,
        rate_limiter: RateLimiter,
        code_length: int | None = None,
        ttl: timedelta | None = None,
        storage_timeout: float | None = None,
    ):
        self.store = store
        self.rate_limiter = rate_limiter
        self.code_length = code_length or settings.OTP_LENGTH
        self.ttl = ttl or timedelta(seconds=settings.OTP_TTL_SECONDS)
        self.storage_timeout = storage_timeout or settings.STORAGE_TIMEOUT_SECONDS

    def _generate_code(self) -> str:
        """Generate a random numeric code from the system CSPRNG."""
        return "".join(secrets.choice(string.digits) for _ in range(self.code_length))

    async def issue(self, identity: str) -> str:
        """
        Issue a new code for an identity, superseding any earlier one.

        The plaintext code is returned only so the transport layer can
        deliver it. It is never logged here.

        Args:
            identity: Phone number

        Returns:
            The plaintext code

        Raises:
            RateLimitExceeded: If the send policy denies this issuance
            TimeoutError: If the credential store does not answer in time
        """
        decision = await self.rate_limiter.try_acquire(identity)
        if not decision.allowed:
            logger.warning(
                "OTP issuance denied for %s, retry after %ss",
                mask_phone(identity),
                decision.retry_after_seconds,
            )
            raise RateLimitExceeded(decision.retry_after_seconds)

        previous = await bounded(self.store.get(identity), self.storage_timeout)
        code = self._generate_code()
        # A reissued code never repeats the one it replaces
        while previous is not None and self.store.matches(previous, code):
            code = self._generate_code()

        record = await bounded(self.store.put(identity, code, self.ttl), self.storage_timeout)
        logger.info(
            "OTP issued for %s (version %d, expires %s)",
            mask_phone(identity),
            record.version,
            record.expires_at.isoformat(),
        )
        return code

    async def consume(self, identity: str, submitted_code: str) -> ConsumeOutcome:
        """
        Run one atomic check-and-consume and log the distinguished outcome.

        A storage timeout is reported as NOT_FOUND: the caller learns only
        that verification failed.
        """
        try:
            outcome = await bounded(self.store.consume(identity, submitted_code), self.storage_timeout)
        except TimeoutError:
            logger.error("OTP verification for %s timed out", mask_phone(identity))
            return ConsumeOutcome.NOT_FOUND

        if outcome is ConsumeOutcome.SUCCESS:
            logger.info("OTP verified for %s", mask_phone(identity))
        else:
            logger.warning("OTP verification failed for %s: %s", mask_phone(identity), outcome.value)
        return outcome

    async def verify(self, identity: str, submitted_code: str) -> bool:
        """
        Verify a submitted code.

        Args:
            identity: Phone number
            submitted_code: Code as typed by the user

        Returns:
            True only if this call consumed the live code
        """
        return await self.consume(identity, submitted_code) is ConsumeOutcome.SUCCESS

    async def require_verified(self, identity: str, submitted_code: str) -> None:
        """
        Verify a submitted code or raise.

        Raises:
            VerificationFailed: For every outcome other than SUCCESS
        """
        outcome = await self.consume(identity, submitted_code)
        if outcome is not ConsumeOutcome.SUCCESS:
            raise VerificationFailed(outcome)

    async def invalidate(self, identity: str) -> bool:
        """Explicitly drop the identity's current code."""
        return await bounded(self.store.invalidate(identity), self.storage_timeout)
