"""Clock helpers shared by the stores and services."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def mask_phone(phone: str) -> str:
    """Mask a phone number down to its last four digits for log lines."""
    return phone[-4:].rjust(len(phone), "*")
