"""
In-memory rate limiting for OTP issuance.

One logical limiter per process. State is independent of the credential
store: a denied request never touches the identity's current OTP.
"""

from __future__ import annotations

import math
from datetime import timedelta

from membership.config import settings
from membership.models.otp import RateLimitDecision, RateLimitWindow
from membership.utils.clock import Clock, utcnow
from membership.utils.locks import StripedLocks


class RateLimiter:
    """
    Per-identity send limiter.

    Two rules, both must pass:
    - at most max_per_window issuances per window (the window opens at
      the first issuance and resets once it has fully elapsed)
    - at least cooldown between consecutive issuances
    """

    def __init__(
        self,
        max_per_window: int | None = None,
        window: timedelta | None = None,
        cooldown: timedelta | None = None,
        clock: Clock = utcnow,
    ):
        self.max_per_window = max_per_window or settings.OTP_RATE_LIMIT_PER_WINDOW
        self.window = window or timedelta(seconds=settings.OTP_RATE_LIMIT_WINDOW_SECONDS)
        self.cooldown = cooldown if cooldown is not None else timedelta(seconds=settings.OTP_RESEND_COOLDOWN_SECONDS)
        self._clock = clock
        # identity -> current window
        self._windows: dict[str, RateLimitWindow] = {}
        self._locks = StripedLocks()

    async def try_acquire(self, identity: str) -> RateLimitDecision:
        """
        Check the policy and, if allowed, count this issuance.

        The check and the increment happen under one lock, so concurrent
        senders cannot both slip under the ceiling.

        Args:
            identity: Phone number being sent a code

        Returns:
            RateLimitDecision, carrying retry_after_seconds when denied
        """
        now = self._clock()
        with self._locks.for_key(identity):
            current = self._windows.get(identity)

            if current is None or now >= current.window_start + self.window:
                self._windows[identity] = RateLimitWindow(
                    identity=identity,
                    count=1,
                    window_start=now,
                    last_issued_at=now,
                )
                return RateLimitDecision.allow()

            waits: list[timedelta] = []
            if current.count >= self.max_per_window:
                waits.append(current.window_start + self.window - now)
            cooldown_ends = current.last_issued_at + self.cooldown
            if now < cooldown_ends:
                waits.append(cooldown_ends - now)

            if waits:
                return RateLimitDecision.deny(math.ceil(max(waits).total_seconds()))

            self._windows[identity] = current.model_copy(
                update={"count": current.count + 1, "last_issued_at": now}
            )
            return RateLimitDecision.allow()

    def peek(self, identity: str) -> RateLimitWindow | None:
        """Current window for an identity, without counting anything."""
        with self._locks.for_key(identity):
            return self._windows.get(identity)

    def cleanup_old_entries(self) -> int:
        """
        Drop windows that have fully elapsed.

        Returns:
            Number of windows removed
        """
        now = self._clock()
        removed = 0
        for identity in list(self._windows):
            with self._locks.for_key(identity):
                current = self._windows.get(identity)
                if current is not None and now >= current.window_start + self.window:
                    del self._windows[identity]
                    removed += 1
        return removed
