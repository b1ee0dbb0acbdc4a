"""
In-process in-flight guard - the default strategy.
"""

import threading

from crewbook.services.interfaces.guard import GuardKey, InFlightGuard


class LocalInFlightGuard(InFlightGuard):
    """
    Set of in-flight keys owned by this process.

    Check-and-insert happens under a lock and without awaiting, so it is
    atomic for coroutines on one loop and for callers on other threads.

    Use when:
    - one device / one process drives the bookings (the normal case)
    """

    def __init__(self):
        self._keys: set[GuardKey] = set()
        self._lock = threading.Lock()

    async def try_acquire(self, key: GuardKey) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    async def release(self, key: GuardKey) -> None:
        with self._lock:
            self._keys.discard(key)

    async def is_held(self, key: GuardKey) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
