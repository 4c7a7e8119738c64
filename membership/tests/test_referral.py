"""Tests for the referral ledger, attributor and account creation."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from membership.errors import CodeSpaceExhausted, PhoneAlreadyRegistered, SelfReferralRejected
from membership.models.referral import ReferralEventKind
from membership.models.user import Account
from membership.services import referral_service
from membership.services.referral_service import (
    ReferralAttributor,
    create_account,
    generate_referral_code,
    normalize_referral_code,
)

pytestmark = pytest.mark.asyncio

REFERRER_PHONE = "+15550000001"
REFEREE_PHONE = "+15550000002"


async def _member(accounts, phone: str, code: str):
    return await accounts.create(phone=phone, full_name="Test Member", email=None, referral_code=code)


class TestLedger:
    """De-duplicated event recording."""

    async def test_record_is_idempotent(self, ledger):
        referrer, referee = uuid4(), uuid4()

        assert await ledger.record(referrer, referee, ReferralEventKind.SIGNUP) is True
        assert await ledger.record(referrer, referee, ReferralEventKind.SIGNUP) is False
        assert await ledger.count_for(referrer, ReferralEventKind.SIGNUP) == 1

    async def test_kinds_are_independent(self, ledger):
        referrer, referee = uuid4(), uuid4()

        await ledger.record(referrer, referee, ReferralEventKind.SIGNUP)
        await ledger.record(referrer, referee, ReferralEventKind.VERIFICATION)

        assert await ledger.count_for(referrer, ReferralEventKind.SIGNUP) == 1
        assert await ledger.count_for(referrer, ReferralEventKind.VERIFICATION) == 1

    async def test_first_referrer_wins(self, ledger):
        first, second, referee = uuid4(), uuid4(), uuid4()

        await ledger.record(first, referee, ReferralEventKind.SIGNUP)
        await ledger.record(second, referee, ReferralEventKind.SIGNUP)

        event = await ledger.get(referee, ReferralEventKind.SIGNUP)
        assert event.referrer_user_id == first
        assert await ledger.count_for(second, ReferralEventKind.SIGNUP) == 0

    async def test_self_referral_rejected(self, ledger):
        user = uuid4()

        with pytest.raises(SelfReferralRejected):
            await ledger.record(user, user, ReferralEventKind.SIGNUP)

        assert await ledger.get(user, ReferralEventKind.SIGNUP) is None

    async def test_event_timestamp_from_clock(self, ledger, clock):
        referee = uuid4()
        await ledger.record(uuid4(), referee, ReferralEventKind.SHARE)

        event = await ledger.get(referee, ReferralEventKind.SHARE)
        assert event.occurred_at == clock.now

    async def test_concurrent_records_single_event(self, ledger):
        referrer, referee = uuid4(), uuid4()

        results = await asyncio.gather(
            *(ledger.record(referrer, referee, ReferralEventKind.VERIFICATION) for _ in range(10))
        )

        assert results.count(True) == 1
        assert await ledger.count_for(referrer, ReferralEventKind.VERIFICATION) == 1


class TestAttributor:
    """Signup and verification credit."""

    async def test_signup_and_verification_scenario(self, accounts, ledger, attributor):
        referrer = await _member(accounts, REFERRER_PHONE, "AB12CD34")
        referee = await _member(accounts, REFEREE_PHONE, "ZZ99YY88")

        await attributor.attribute_signup(referee.id, "AB12CD34")

        assert (await accounts.get(referee.id)).referred_by_code == "AB12CD34"
        signup = await ledger.get(referee.id, ReferralEventKind.SIGNUP)
        assert signup.referrer_user_id == referrer.id
        assert await attributor.count_verified_referrals(referrer.id) == 0

        await attributor.attribute_verification(referee.id)
        await attributor.attribute_verification(referee.id)

        assert await attributor.count_verified_referrals(referrer.id) == 1

    async def test_code_is_normalized(self, accounts, ledger, attributor):
        await _member(accounts, REFERRER_PHONE, "AB12CD34")
        referee = await _member(accounts, REFEREE_PHONE, "ZZ99YY88")

        await attributor.attribute_signup(referee.id, "  ab12cd34 ")

        assert await ledger.get(referee.id, ReferralEventKind.SIGNUP) is not None

    async def test_unknown_code_is_a_noop(self, accounts, ledger, attributor):
        referee = await _member(accounts, REFEREE_PHONE, "ZZ99YY88")

        await attributor.attribute_signup(referee.id, "NOPE0000")
        await attributor.attribute_verification(referee.id)

        assert (await accounts.get(referee.id)).referred_by_code is None
        assert await ledger.get(referee.id, ReferralEventKind.SIGNUP) is None

    async def test_missing_code_is_a_noop(self, accounts, ledger, attributor):
        referee = await _member(accounts, REFEREE_PHONE, "ZZ99YY88")

        await attributor.attribute_signup(referee.id, None)
        await attributor.attribute_signup(referee.id, "   ")

        assert await ledger.get(referee.id, ReferralEventKind.SIGNUP) is None

    async def test_own_code_is_rejected_quietly(self, accounts, ledger, attributor, caplog):
        member = await _member(accounts, REFERRER_PHONE, "AB12CD34")

        with caplog.at_level(logging.WARNING):
            await attributor.attribute_signup(member.id, "AB12CD34")

        assert "Self-referral rejected" in caplog.text
        assert (await accounts.get(member.id)).referred_by_code is None
        assert await ledger.get(member.id, ReferralEventKind.SIGNUP) is None

    async def test_second_signup_code_does_not_reattribute(self, accounts, ledger, attributor):
        first = await _member(accounts, REFERRER_PHONE, "AB12CD34")
        await _member(accounts, "+15550000003", "CD34EF56")
        referee = await _member(accounts, REFEREE_PHONE, "ZZ99YY88")

        await attributor.attribute_signup(referee.id, "AB12CD34")
        await attributor.attribute_signup(referee.id, "CD34EF56")

        assert (await accounts.get(referee.id)).referred_by_code == "AB12CD34"
        event = await ledger.get(referee.id, ReferralEventKind.SIGNUP)
        assert event.referrer_user_id == first.id

    async def test_verification_without_signup_referral(self, accounts, ledger, attributor):
        member = await _member(accounts, REFEREE_PHONE, "ZZ99YY88")

        await attributor.attribute_verification(member.id)

        assert await ledger.get(member.id, ReferralEventKind.VERIFICATION) is None

    async def test_storage_failure_never_raises(self, accounts, ledger, caplog):
        await _member(accounts, REFERRER_PHONE, "AB12CD34")
        referee = await _member(accounts, REFEREE_PHONE, "ZZ99YY88")
        ledger.record = AsyncMock(side_effect=RuntimeError("ledger down"))
        attributor = ReferralAttributor(accounts, ledger)

        with caplog.at_level(logging.ERROR):
            await attributor.attribute_signup(referee.id, "AB12CD34")

        assert "Signup referral attribution failed" in caplog.text


class TestCreateAccount:
    """Referral code assignment at registration."""

    async def test_generated_code_shape(self):
        code = generate_referral_code()

        assert len(code) == 8
        assert code.isalnum()
        assert code == code.upper()

    async def test_normalize(self):
        assert normalize_referral_code(" ab12cd34 ") == "AB12CD34"
        assert normalize_referral_code("") is None
        assert normalize_referral_code("   ") is None
        assert normalize_referral_code(None) is None

    async def test_create_account_assigns_code(self, accounts):
        account = await create_account(accounts, REFEREE_PHONE, "Test Member", "member@membership.org")

        assert len(account.referral_code) == 8
        assert await accounts.get_by_referral_code(account.referral_code) == account
        assert account.membership_id == "MBR" + account.id.hex.upper()

    async def test_membership_ids_differ_when_id_prefixes_match(self, clock):
        first = Account(
            id=UUID("12345678-0000-4000-8000-000000000001"),
            phone=REFERRER_PHONE,
            full_name="Test Member",
            referral_code="AB12CD34",
            created_at=clock.now,
        )
        second = first.model_copy(update={"id": UUID("12345678-0000-4000-8000-000000000002")})

        assert first.membership_id != second.membership_id

    async def test_collision_is_retried(self, accounts, monkeypatch):
        await _member(accounts, REFERRER_PHONE, "AB12CD34")
        codes = iter(["AB12CD34", "AB12CD34", "EF56GH78"])
        monkeypatch.setattr(referral_service, "generate_referral_code", lambda length=None: next(codes))

        account = await create_account(accounts, REFEREE_PHONE, "Test Member", None)

        assert account.referral_code == "EF56GH78"

    async def test_code_space_exhausted(self, accounts, monkeypatch):
        await _member(accounts, REFERRER_PHONE, "AB12CD34")
        monkeypatch.setattr(referral_service, "generate_referral_code", lambda length=None: "AB12CD34")

        with pytest.raises(CodeSpaceExhausted):
            await create_account(accounts, REFEREE_PHONE, "Test Member", None, max_attempts=3)

        assert await accounts.get_by_phone(REFEREE_PHONE) is None

    async def test_duplicate_phone(self, accounts):
        await create_account(accounts, REFEREE_PHONE, "Test Member", None)

        with pytest.raises(PhoneAlreadyRegistered):
            await create_account(accounts, REFEREE_PHONE, "Someone Else", None)
