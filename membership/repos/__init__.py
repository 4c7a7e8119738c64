"""
Repository layer for the membership backend.

All SQL lives here and ONLY here. Each PostgreSQL repo has an in-memory
counterpart with the same contract for the memory store backend.
"""

from membership.repos.account_store import InMemoryAccountStore
from membership.repos.credential_store import CredentialStore
from membership.repos.otp_repo import OtpRepo
from membership.repos.referral_event_repo import ReferralEventRepo
from membership.repos.referral_ledger import ReferralLedger
from membership.repos.user_repo import UserRepo

__all__ = [
    "CredentialStore",
    "OtpRepo",
    "ReferralLedger",
    "ReferralEventRepo",
    "InMemoryAccountStore",
    "UserRepo",
]
