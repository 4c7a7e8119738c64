"""Lock striping for per-key mutual exclusion across threads and tasks."""

from __future__ import annotations

import threading

# A key always maps to the same stripe
_LOCK_STRIPES = 64


class StripedLocks:
    """Fixed pool of locks addressed by key, so no lock is ever evicted."""

    def __init__(self, stripes: int = _LOCK_STRIPES):
        self._locks = [threading.Lock() for _ in range(stripes)]

    def for_key(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]
