"""Repository for referral events stored in PostgreSQL."""

from __future__ import annotations

from uuid import UUID

import asyncpg

from membership.db import system_conn
from membership.errors import SelfReferralRejected
from membership.models.referral import ReferralEvent, ReferralEventKind


def _row_to_referral_event(row: asyncpg.Record) -> ReferralEvent:
    """Convert a database row to a ReferralEvent model."""
    return ReferralEvent(
        id=row["id"],
        referrer_user_id=row["referrer_user_id"],
        referee_user_id=row["referee_user_id"],
        kind=ReferralEventKind(row["event_kind"]),
        occurred_at=row["occurred_at"],
    )


class ReferralEventRepo:
    """
    All referral event database operations.

    Idempotency rests on UNIQUE (referee_user_id, event_kind): the insert
    is a single ON CONFLICT DO NOTHING, never a check followed by an insert.
    """

    async def record(self, referrer_id: UUID, referee_id: UUID, kind: ReferralEventKind) -> bool:
        """
        Record an event unless one already exists for (referee, kind).

        Args:
            referrer_id: User credited with the referral
            referee_id: User who was referred
            kind: Event kind

        Returns:
            True if a new row was inserted, False if it already existed

        Raises:
            SelfReferralRejected: If referrer and referee are the same user
        """
        if referrer_id == referee_id:
            raise SelfReferralRejected(f"user {referee_id} cannot refer themselves")

        async with system_conn() as conn:
            inserted_id = await conn.fetchval(
                """
                INSERT INTO referral_events (referrer_user_id, referee_user_id, event_kind)
                VALUES ($1, $2, $3)
                ON CONFLICT (referee_user_id, event_kind) DO NOTHING
                RETURNING id
                """,
                referrer_id,
                referee_id,
                kind.value,
            )
            return inserted_id is not None

    async def get(self, referee_id: UUID, kind: ReferralEventKind) -> ReferralEvent | None:
        async with system_conn() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM referral_events WHERE referee_user_id = $1 AND event_kind = $2",
                referee_id,
                kind.value,
            )
            return _row_to_referral_event(row) if row else None

    async def count_for(self, referrer_id: UUID, kind: ReferralEventKind) -> int:
        """
        Count events of a kind credited to a referrer.

        Args:
            referrer_id: Referrer user UUID
            kind: Event kind

        Returns:
            Number of de-duplicated events
        """
        async with system_conn() as conn:
            count = await conn.fetchval(
                """
                SELECT count(*)
                FROM referral_events
                WHERE referrer_user_id = $1 AND event_kind = $2
                """,
                referrer_id,
                kind.value,
            )
            return count or 0
