"""
Referral attribution.

attribute_signup and attribute_verification are best-effort side effects
of registration and login: they never raise to the caller. Unknown codes
and self-referrals are resolved here as no-ops and only logged.
"""

from __future__ import annotations

import logging
import secrets
import string
from uuid import UUID

from membership.config import settings
from membership.db import bounded
from membership.errors import (
    CodeSpaceExhausted,
    ReferralCodeTaken,
    ReferralCodeUnresolved,
    SelfReferralRejected,
)
from membership.models.referral import ReferralEventKind
from membership.models.user import Account
from membership.repos.account_store import InMemoryAccountStore
from membership.repos.referral_event_repo import ReferralEventRepo
from membership.repos.referral_ledger import ReferralLedger
from membership.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)

AccountBackend = InMemoryAccountStore | UserRepo
LedgerBackend = ReferralLedger | ReferralEventRepo

_REFERRAL_ALPHABET = string.ascii_uppercase + string.digits


def generate_referral_code(length: int | None = None) -> str:
    """Generate an uppercase alphanumeric referral code (e.g. 'AB12CD34')."""
    return "".join(secrets.choice(_REFERRAL_ALPHABET) for _ in range(length or settings.REFERRAL_CODE_LENGTH))


def normalize_referral_code(code: str | None) -> str | None:
    """Trim and upper-case a user-supplied code. Blank input becomes None."""
    if not code:
        return None
    code = code.strip().upper()
    return code or None


async def create_account(
    accounts: AccountBackend,
    phone: str,
    full_name: str,
    email: str | None,
    max_attempts: int | None = None,
) -> Account:
    """
    Create an account with a fresh, unique referral code.

    Collisions are detected by the store's uniqueness constraint and
    retried with a new code, up to max_attempts.

    Raises:
        PhoneAlreadyRegistered: If the phone already has an account
        CodeSpaceExhausted: If every attempt collided
    """
    max_attempts = max_attempts or settings.REFERRAL_CODE_MAX_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        code = generate_referral_code()
        try:
            return await accounts.create(phone=phone, full_name=full_name, email=email, referral_code=code)
        except ReferralCodeTaken:
            logger.warning("Referral code collision on attempt %d/%d", attempt, max_attempts)

    logger.error("Could not assign a unique referral code after %d attempts", max_attempts)
    raise CodeSpaceExhausted(f"Failed to generate a unique referral code after {max_attempts} attempts")


class ReferralAttributor:
    """Credits referrers for their referees' signup and verification, once each."""

    def __init__(
        self,
        accounts: AccountBackend,
        ledger: LedgerBackend,
        storage_timeout: float | None = None,
    ):
        self.accounts = accounts
        self.ledger = ledger
        self.storage_timeout = storage_timeout or settings.STORAGE_TIMEOUT_SECONDS

    async def _resolve_referrer(self, referee_id: UUID, referral_code: str | None) -> Account:
        """
        Find the account that owns a referral code.

        Raises:
            ReferralCodeUnresolved: If the code is blank or unknown
            SelfReferralRejected: If the code belongs to the referee
        """
        code = normalize_referral_code(referral_code)
        if code is None:
            raise ReferralCodeUnresolved("no referral code")

        referrer = await bounded(self.accounts.get_by_referral_code(code), self.storage_timeout)
        if referrer is None:
            raise ReferralCodeUnresolved(code)
        if referrer.id == referee_id:
            raise SelfReferralRejected(code)
        return referrer

    async def _record(self, referrer_id: UUID, referee_id: UUID, kind: ReferralEventKind) -> None:
        created = await bounded(self.ledger.record(referrer_id, referee_id, kind), self.storage_timeout)
        if created:
            logger.info("Referral %s credited to %s for %s", kind.value, referrer_id, referee_id)
        else:
            logger.debug("Referral %s for %s already recorded", kind.value, referee_id)

    async def attribute_signup(self, referee_id: UUID, referral_code: str | None) -> None:
        """
        Credit a signup to the owner of referral_code.

        The code is stored on the referee's account (first attribution wins)
        so a later verification can be credited to the same referrer.

        Args:
            referee_id: Newly registered user
            referral_code: Code entered at signup, may be None
        """
        try:
            referrer = await self._resolve_referrer(referee_id, referral_code)
            await bounded(
                self.accounts.set_referred_by(referee_id, referrer.referral_code),
                self.storage_timeout,
            )
            referee = await bounded(self.accounts.get(referee_id), self.storage_timeout)
            if referee is None or referee.referred_by_code != referrer.referral_code:
                logger.info("Account %s was already attributed to another referrer", referee_id)
                return
            await self._record(referrer.id, referee_id, ReferralEventKind.SIGNUP)
        except ReferralCodeUnresolved as e:
            logger.info("Signup referral ignored for %s: unresolved code %s", referee_id, e)
        except SelfReferralRejected:
            logger.warning("Self-referral rejected for %s", referee_id)
        except Exception:
            logger.exception("Signup referral attribution failed for %s", referee_id)

    async def attribute_verification(self, referee_id: UUID) -> None:
        """
        Credit a verified phone to the referrer recorded at signup, if any.

        Args:
            referee_id: User who just verified
        """
        try:
            referee = await bounded(self.accounts.get(referee_id), self.storage_timeout)
            if referee is None or referee.referred_by_code is None:
                return
            referrer = await self._resolve_referrer(referee_id, referee.referred_by_code)
            await self._record(referrer.id, referee_id, ReferralEventKind.VERIFICATION)
        except ReferralCodeUnresolved as e:
            logger.info("Verification referral ignored for %s: unresolved code %s", referee_id, e)
        except SelfReferralRejected:
            logger.warning("Self-referral rejected for %s", referee_id)
        except Exception:
            logger.exception("Verification referral attribution failed for %s", referee_id)

    async def count_verified_referrals(self, referrer_id: UUID) -> int:
        """Number of referees who verified their phone after signing up with this referrer's code."""
        return await bounded(
            self.ledger.count_for(referrer_id, ReferralEventKind.VERIFICATION),
            self.storage_timeout,
        )
