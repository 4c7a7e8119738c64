"""
Service wiring.

All cross-request state (credential store, rate limiter, referral ledger,
account store) is built once here at application start and handed to the
routes through app.state. Nothing else holds these objects.
"""

from __future__ import annotations

from dataclasses import dataclass

from membership.config import settings
from membership.middleware.rate_limit import RateLimiter
from membership.repos.account_store import InMemoryAccountStore
from membership.repos.credential_store import CredentialStore
from membership.repos.otp_repo import OtpRepo
from membership.repos.referral_event_repo import ReferralEventRepo
from membership.repos.referral_ledger import ReferralLedger
from membership.repos.user_repo import UserRepo
from membership.services.delivery_queue import DeliveryQueue
from membership.services.otp_service import CredentialBackend, OtpService
from membership.services.referral_service import AccountBackend, ReferralAttributor
from membership.services.sms import SmsGateway


@dataclass
class Services:
    """Everything a request handler needs, constructed once per process."""

    otp: OtpService
    referrals: ReferralAttributor
    accounts: AccountBackend
    credentials: CredentialBackend
    rate_limiter: RateLimiter
    sms: SmsGateway
    delivery: DeliveryQueue


def build_services(backend: str | None = None) -> Services:
    """
    Build the service graph for a store backend.

    Args:
        backend: "memory" or "postgres", defaults to STORE_BACKEND.
                 The postgres backend expects db.init_pool() to have run
                 before the first request.

    Returns:
        Wired Services
    """
    backend = backend or settings.STORE_BACKEND

    if backend == "postgres":
        credentials: CredentialBackend = OtpRepo()
        accounts: AccountBackend = UserRepo()
        ledger = ReferralEventRepo()
    else:
        credentials = CredentialStore()
        accounts = InMemoryAccountStore()
        ledger = ReferralLedger()

    rate_limiter = RateLimiter()
    return Services(
        otp=OtpService(credentials, rate_limiter),
        referrals=ReferralAttributor(accounts, ledger),
        accounts=accounts,
        credentials=credentials,
        rate_limiter=rate_limiter,
        sms=SmsGateway(),
        delivery=DeliveryQueue(),
    )
