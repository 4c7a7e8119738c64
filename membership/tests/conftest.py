"""
Pytest configuration and fixtures for membership tests.
"""

from __future__ import annotations

import os

# Set test environment variables before importing config
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only")
os.environ.setdefault("OTP_HASH_SECRET", "test-otp-hash-secret")

from datetime import UTC, datetime, timedelta  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from membership.main import create_app  # noqa: E402
from membership.middleware.rate_limit import RateLimiter  # noqa: E402
from membership.repos.account_store import InMemoryAccountStore  # noqa: E402
from membership.repos.credential_store import CredentialStore  # noqa: E402
from membership.repos.referral_ledger import ReferralLedger  # noqa: E402
from membership.services.container import Services  # noqa: E402
from membership.services.delivery_queue import DeliveryQueue  # noqa: E402
from membership.services.otp_service import OtpService  # noqa: E402
from membership.services.referral_service import ReferralAttributor  # noqa: E402
from membership.services.sms import SmsGateway  # noqa: E402


class FakeClock:
    """Manually advanced clock for TTL, window and cooldown tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credential_store(clock):
    return CredentialStore(max_attempts=5, hash_secret="test-otp-hash-secret", clock=clock)


@pytest.fixture
def rate_limiter(clock):
    """Production-shaped policy: 5 per hour, 45s cooldown."""
    return RateLimiter(
        max_per_window=5,
        window=timedelta(minutes=60),
        cooldown=timedelta(seconds=45),
        clock=clock,
    )


@pytest.fixture
def otp_service(credential_store, clock):
    """OTP service with the cooldown disabled so codes can be reissued back to back."""
    limiter = RateLimiter(
        max_per_window=1000,
        window=timedelta(minutes=60),
        cooldown=timedelta(0),
        clock=clock,
    )
    return OtpService(credential_store, limiter, code_length=6, ttl=timedelta(minutes=5))


@pytest.fixture
def accounts(clock):
    return InMemoryAccountStore(clock=clock)


@pytest.fixture
def ledger(clock):
    return ReferralLedger(clock=clock)


@pytest.fixture
def attributor(accounts, ledger):
    return ReferralAttributor(accounts, ledger)


@pytest.fixture
def sms_gateway():
    """SMS gateway double that records every send."""
    gateway = AsyncMock(spec=SmsGateway)
    gateway.send_otp = AsyncMock(return_value=None)
    return gateway


@pytest.fixture
def services(credential_store, rate_limiter, accounts, ledger, sms_gateway):
    """In-memory service graph with the production rate-limit policy."""
    return Services(
        otp=OtpService(credential_store, rate_limiter, code_length=6, ttl=timedelta(minutes=5)),
        referrals=ReferralAttributor(accounts, ledger),
        accounts=accounts,
        credentials=credential_store,
        rate_limiter=rate_limiter,
        sms=sms_gateway,
        delivery=DeliveryQueue(maxsize=100),
    )


@pytest_asyncio.fixture
async def async_client(services):
    """Async HTTP client against an app wired to the in-memory services."""
    app = create_app(services)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
