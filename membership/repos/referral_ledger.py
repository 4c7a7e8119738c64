"""
In-memory referral ledger.

Events are keyed by (referee, kind). The key is the uniqueness
constraint: insert-if-absent happens under one lock, so racing callers
produce exactly one event.
"""

from __future__ import annotations

import threading
from uuid import UUID, uuid4

from membership.errors import SelfReferralRejected
from membership.models.referral import ReferralEvent, ReferralEventKind
from membership.utils.clock import Clock, utcnow


class ReferralLedger:
    """Append-only, de-duplicated referral events."""

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._events: dict[tuple[UUID, ReferralEventKind], ReferralEvent] = {}
        self._lock = threading.Lock()

    async def record(self, referrer_id: UUID, referee_id: UUID, kind: ReferralEventKind) -> bool:
        """
        Record an event unless one already exists for (referee, kind).

        Args:
            referrer_id: User credited with the referral
            referee_id: User who was referred
            kind: Event kind

        Returns:
            True if a new event was stored, False if it already existed

        Raises:
            SelfReferralRejected: If referrer and referee are the same user
        """
        if referrer_id == referee_id:
            raise SelfReferralRejected(f"user {referee_id} cannot refer themselves")

        key = (referee_id, kind)
        with self._lock:
            if key in self._events:
                return False
            self._events[key] = ReferralEvent(
                id=uuid4(),
                referrer_user_id=referrer_id,
                referee_user_id=referee_id,
                kind=kind,
                occurred_at=self._clock(),
            )
            return True

    async def get(self, referee_id: UUID, kind: ReferralEventKind) -> ReferralEvent | None:
        with self._lock:
            return self._events.get((referee_id, kind))

    async def count_for(self, referrer_id: UUID, kind: ReferralEventKind) -> int:
        """Number of de-duplicated events of a kind credited to a referrer."""
        with self._lock:
            return sum(
                1
                for event in self._events.values()
                if event.referrer_user_id == referrer_id and event.kind == kind
            )
