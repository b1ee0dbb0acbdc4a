"""
Guard strategy factory and core wiring.
Configures which in-flight guard to use and assembles the controller,
verification engine and ledger around one booking service.
"""

from dataclasses import dataclass
from typing import Optional

from crewbook.core.config import get_settings
from crewbook.core.logging import get_logger
from crewbook.infrastructure.booking_client import BookingServiceClient
from crewbook.infrastructure.redis_client import close_redis, get_redis
from crewbook.services.guard_service import RedisInFlightGuard
from crewbook.services.interfaces.booking_service import BookingService
from crewbook.services.interfaces.guard import InFlightGuard
from crewbook.services.interfaces.local_guard import LocalInFlightGuard
from crewbook.services.ledger import AttendanceLedger
from crewbook.services.lifecycle import BookingLifecycleController
from crewbook.services.verification import VerificationEngine

logger = get_logger(__name__)


def get_guard_strategy(redis_client=None) -> InFlightGuard:
    """
    Get configured guard strategy.

    - local: LocalInFlightGuard (one process, one device)
    - redis: RedisInFlightGuard (several processes share the account)

    Selected via GUARD_BACKEND. Falls back to the local guard when redis is
    requested but no client is available.
    """
    strategy = get_settings().GUARD_BACKEND

    if strategy == "redis":
        if redis_client is not None:
            return RedisInFlightGuard(redis_client)
        logger.warning("redis_guard_unavailable", fallback="local")
    return LocalInFlightGuard()


@dataclass
class BookingCore:
    service: BookingService
    guard: InFlightGuard
    controller: BookingLifecycleController
    engine: VerificationEngine
    ledger: AttendanceLedger
    uses_redis: bool = False

    async def aclose(self) -> None:
        """Close the booking service client and, when the guard opened it, the Redis connection."""
        if isinstance(self.service, BookingServiceClient):
            await self.service.aclose()
        if self.uses_redis:
            await close_redis()


def create_booking_core(
    service: Optional[BookingService] = None,
    guard: Optional[InFlightGuard] = None,
) -> BookingCore:
    """Controller and engine share one guard and one ledger."""
    service = service or BookingServiceClient()
    guard = guard or get_guard_strategy()
    ledger = AttendanceLedger()
    controller = BookingLifecycleController(service, guard)
    engine = VerificationEngine(controller, ledger, guard)
    return BookingCore(
        service=service,
        guard=guard,
        controller=controller,
        engine=engine,
        ledger=ledger,
    )


async def open_booking_core(
    service: Optional[BookingService] = None,
    guard: Optional[InFlightGuard] = None,
) -> BookingCore:
    """
    Like create_booking_core, but connects to Redis first when
    GUARD_BACKEND is "redis" and no guard was passed in.
    Pair with `await core.aclose()`.
    """
    uses_redis = False
    if guard is None and get_settings().GUARD_BACKEND == "redis":
        redis_client = await get_redis()
        guard = get_guard_strategy(redis_client)
        uses_redis = redis_client is not None

    core = create_booking_core(service, guard)
    core.uses_redis = uses_redis
    logger.info("booking_core_ready", guard=type(core.guard).__name__)
    return core
