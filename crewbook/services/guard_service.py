"""
Redis-backed in-flight guard for clients that share bookings across processes.
Implements InFlightGuard using SET NX with an expiry.

Circuit Breaker Pattern:
  On Redis failure, the guard "fails open" (admits the request).
  This keeps a Redis outage from blocking every scan and status change.
  The booking service remains authoritative - the guard is advisory only.

  Tradeoff: during an outage two processes may both send a request for the
  same key; the backend rejects the second one (the code was already used,
  or the transition already happened), which the classifier reports as
  BackendRejected.

Keys expire after GUARD_KEY_TTL_SECONDS so a process that dies while holding
a key cannot lock it out permanently.
"""

import uuid
from typing import Optional

from crewbook.core.config import get_settings
from crewbook.core.logging import get_logger
from crewbook.core.metrics import redis_guard_errors
from crewbook.services.interfaces.guard import GuardKey, InFlightGuard

logger = get_logger(__name__)

KEY_PREFIX = "crewbook:inflight:"

# Deletes KEYS[1] only while it still holds this guard's owner token (ARGV[1])
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisInFlightGuard(InFlightGuard):
    """
    Shared in-flight set in Redis.

    Use when:
    - several devices or workers act on the same customer's bookings
    - duplicate scans must be stopped before they reach the backend
    """

    def __init__(self, redis_client, ttl_seconds: Optional[int] = None):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds or get_settings().GUARD_KEY_TTL_SECONDS
        # Owner token so a release never deletes a key re-acquired by someone else
        self._owner = uuid.uuid4().hex
        self._held: set[GuardKey] = set()

    @staticmethod
    def _redis_key(key: GuardKey) -> str:
        return f"{KEY_PREFIX}{key}"

    async def try_acquire(self, key: GuardKey) -> bool:
        if key in self._held:
            return False
        try:
            acquired = await self.redis.set(
                self._redis_key(key), self._owner, nx=True, ex=self.ttl_seconds
            )
        except Exception as e:
            redis_guard_errors.inc()
            logger.warning("redis_guard_fail_open", key=str(key), error=str(e))
            self._held.add(key)
            return True
        if acquired:
            self._held.add(key)
        return bool(acquired)

    async def release(self, key: GuardKey) -> None:
        if key not in self._held:
            return
        self._held.discard(key)
        try:
            await self.redis.eval(RELEASE_SCRIPT, 1, self._redis_key(key), self._owner)
        except Exception as e:
            # The key expires on its own after ttl_seconds
            redis_guard_errors.inc()
            logger.warning("redis_guard_release_failed", key=str(key), error=str(e))

    async def is_held(self, key: GuardKey) -> bool:
        if key in self._held:
            return True
        try:
            return bool(await self.redis.exists(self._redis_key(key)))
        except Exception as e:
            redis_guard_errors.inc()
            logger.warning("redis_guard_check_failed", key=str(key), error=str(e))
            return False
