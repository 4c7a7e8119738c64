"""
Membership backend configuration: all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


class Settings:
    """Application settings from environment variables."""

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")

    # Storage
    STORE_BACKEND: str = os.environ.get("STORE_BACKEND", "memory")  # memory | postgres
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")
    STORAGE_TIMEOUT_SECONDS: float = float(os.environ.get("STORAGE_TIMEOUT_SECONDS", "2.0"))

    # Auth
    JWT_SECRET: str = os.environ.get("JWT_SECRET", "")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_HOURS: int = 24

    # OTP policy
    OTP_LENGTH: int = int(os.environ.get("OTP_LENGTH", "6"))
    OTP_TTL_SECONDS: int = int(os.environ.get("OTP_TTL_SECONDS", "300"))  # 5 minutes
    OTP_MAX_ATTEMPTS: int = int(os.environ.get("OTP_MAX_ATTEMPTS", "5"))
    OTP_HASH_SECRET: str = os.environ.get("OTP_HASH_SECRET", "dev-otp-secret-change-me")

    # OTP send rate limits
    OTP_RATE_LIMIT_PER_WINDOW: int = int(os.environ.get("OTP_RATE_LIMIT_PER_WINDOW", "5"))
    OTP_RATE_LIMIT_WINDOW_SECONDS: int = int(os.environ.get("OTP_RATE_LIMIT_WINDOW_SECONDS", "3600"))
    OTP_RESEND_COOLDOWN_SECONDS: int = int(os.environ.get("OTP_RESEND_COOLDOWN_SECONDS", "45"))

    # Referral codes
    REFERRAL_CODE_LENGTH: int = 8
    REFERRAL_CODE_MAX_ATTEMPTS: int = int(os.environ.get("REFERRAL_CODE_MAX_ATTEMPTS", "5"))

    # SMS gateway (BulkSMS-style HTTP API)
    SMS_API_URL: str = os.environ.get("SMS_API_URL", "")
    SMS_USER: str = os.environ.get("SMS_USER", "")
    SMS_KEY: str = os.environ.get("SMS_KEY", "")
    SMS_SENDER_ID: str = os.environ.get("SMS_SENDER_ID", "")
    SMS_ACCUSAGE: str = os.environ.get("SMS_ACCUSAGE", "1")
    SMS_ENTITY_ID: str = os.environ.get("SMS_ENTITY_ID", "")
    SMS_TEMPLATE_ID: str = os.environ.get("SMS_TEMPLATE_ID", "")
    SMS_STRIP_PREFIX: str = os.environ.get("SMS_STRIP_PREFIX", "+91")
    SMS_TIMEOUT_SECONDS: float = 10.0

    # Email (Resend)
    RESEND_API_KEY: str = os.environ.get("RESEND_API_KEY", "")
    EMAIL_FROM: str = os.environ.get("EMAIL_FROM", "Membership <noreply@example.org>")

    # Background maintenance
    CLEANUP_INTERVAL_SECONDS: int = int(os.environ.get("CLEANUP_INTERVAL_SECONDS", "60"))
    DELIVERY_QUEUE_SIZE: int = 1_000


# Singleton instance
settings = Settings()

# Validate required settings (skip in test mode)
_testing = os.environ.get("TESTING", "").lower() == "true"

if settings.STORE_BACKEND not in ("memory", "postgres"):
    raise RuntimeError(f"STORE_BACKEND must be 'memory' or 'postgres', got {settings.STORE_BACKEND!r}")
if settings.STORE_BACKEND == "postgres" and not settings.DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required for the postgres backend")

if not _testing:
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET environment variable is required")
    if settings.ENVIRONMENT == "production" and settings.OTP_HASH_SECRET == "dev-otp-secret-change-me":
        raise RuntimeError("OTP_HASH_SECRET environment variable is required in production")
