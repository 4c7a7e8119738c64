"""In-memory account store for single-instance deployments and tests."""

from __future__ import annotations

import threading
from uuid import UUID, uuid4

from membership.errors import PhoneAlreadyRegistered, ReferralCodeTaken
from membership.models.user import Account
from membership.utils.clock import Clock, utcnow


class InMemoryAccountStore:
    """Same contract as UserRepo, with phone and referral code kept unique."""

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._accounts: dict[UUID, Account] = {}
        self._by_phone: dict[str, UUID] = {}
        self._by_code: dict[str, UUID] = {}
        self._lock = threading.Lock()

    async def get(self, user_id: UUID) -> Account | None:
        with self._lock:
            return self._accounts.get(user_id)

    async def get_by_phone(self, phone: str) -> Account | None:
        with self._lock:
            user_id = self._by_phone.get(phone)
            return self._accounts.get(user_id) if user_id else None

    async def get_by_referral_code(self, code: str) -> Account | None:
        with self._lock:
            user_id = self._by_code.get(code)
            return self._accounts.get(user_id) if user_id else None

    async def exists_by_phone(self, phone: str) -> bool:
        with self._lock:
            return phone in self._by_phone

    async def create(
        self,
        phone: str,
        full_name: str,
        email: str | None,
        referral_code: str,
    ) -> Account:
        """
        Create a new account.

        Raises:
            PhoneAlreadyRegistered: If the phone already has an account
            ReferralCodeTaken: If the referral code is already assigned
        """
        with self._lock:
            if phone in self._by_phone:
                raise PhoneAlreadyRegistered(phone)
            if referral_code in self._by_code:
                raise ReferralCodeTaken(referral_code)

            account = Account(
                id=uuid4(),
                phone=phone,
                full_name=full_name,
                email=email,
                referral_code=referral_code,
                created_at=self._clock(),
            )
            self._accounts[account.id] = account
            self._by_phone[phone] = account.id
            self._by_code[referral_code] = account.id
            return account

    async def set_referred_by(self, user_id: UUID, referral_code: str) -> bool:
        """Record the signup referral code. First write wins."""
        with self._lock:
            account = self._accounts.get(user_id)
            if account is None or account.referred_by_code is not None:
                return False
            self._accounts[user_id] = account.model_copy(update={"referred_by_code": referral_code})
            return True

    async def touch_last_login(self, user_id: UUID) -> None:
        with self._lock:
            account = self._accounts.get(user_id)
            if account is not None:
                self._accounts[user_id] = account.model_copy(update={"last_login_at": self._clock()})
