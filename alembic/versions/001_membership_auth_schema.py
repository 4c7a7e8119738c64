"""Accounts, OTP credentials and referral events.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from alembic import op


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create users table
    op.execute("""
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            phone TEXT NOT NULL,
            full_name TEXT NOT NULL,
            email TEXT,
            referral_code CHAR(8) NOT NULL,
            referred_by_code CHAR(8),
            last_login_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT users_phone_unique UNIQUE (phone),
            CONSTRAINT users_referral_code_unique UNIQUE (referral_code),
            CONSTRAINT users_referral_code_format CHECK (referral_code ~ '^[A-Z0-9]{8}$')
        );
    """)

    # One row per phone; issuing a code upserts it
    op.execute("""
        CREATE TABLE otp_credentials (
            identity TEXT PRIMARY KEY,
            code_hash TEXT NOT NULL,
            issued_at TIMESTAMPTZ NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            attempts_remaining INTEGER NOT NULL CHECK (attempts_remaining >= 0),
            consumed BOOLEAN NOT NULL DEFAULT false,
            version INTEGER NOT NULL DEFAULT 1
        );
    """)

    op.execute("""
        CREATE INDEX idx_otp_credentials_expires_at ON otp_credentials(expires_at);
    """)

    # Referral events: the unique pair is what makes attribution idempotent
    op.execute("""
        CREATE TABLE referral_events (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            referrer_user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            referee_user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            event_kind TEXT NOT NULL
                CHECK (event_kind IN ('SHARE', 'LINK_CLICK', 'SIGNUP', 'VERIFICATION')),
            occurred_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT referral_events_referee_kind_unique UNIQUE (referee_user_id, event_kind),
            CONSTRAINT referral_events_no_self_referral CHECK (referrer_user_id <> referee_user_id)
        );
    """)

    op.execute("""
        CREATE INDEX idx_referral_events_referrer ON referral_events(referrer_user_id, event_kind);
    """)


def downgrade():
    op.execute("DROP TABLE IF EXISTS referral_events;")
    op.execute("DROP TABLE IF EXISTS otp_credentials;")
    op.execute("DROP TABLE IF EXISTS users;")
