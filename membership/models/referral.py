"""Referral event models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class ReferralEventKind(str, Enum):
    """Kinds of referral activity that can be attributed to a referrer."""

    SHARE = "SHARE"  # referrer shared their link
    LINK_CLICK = "LINK_CLICK"  # someone opened the referral link
    SIGNUP = "SIGNUP"  # referee registered with the code
    VERIFICATION = "VERIFICATION"  # referee verified their phone


class ReferralEvent(BaseModel):
    """One attributed event. Unique per (referee_user_id, kind)."""

    id: UUID
    referrer_user_id: UUID
    referee_user_id: UUID
    kind: ReferralEventKind
    occurred_at: datetime
