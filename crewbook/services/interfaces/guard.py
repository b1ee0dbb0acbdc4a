"""
In-flight guard strategy interface.
Allows swapping between an in-process set and a Redis-shared set.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from crewbook.core.errors import AlreadyProcessingError


@dataclass(frozen=True)
class GuardKey:
    """(booking, worker) pair; worker is None for booking-wide operations."""

    booking_id: str
    worker_id: Optional[str] = None

    def __str__(self) -> str:
        if self.worker_id is None:
            return f"booking:{self.booking_id}"
        return f"booking:{self.booking_id}:worker:{self.worker_id}"


class InFlightGuard(ABC):
    """
    Interface for the per-key in-flight set.

    Implementations:
    - LocalInFlightGuard: asyncio/thread-safe set inside this process
    - RedisInFlightGuard: SET NX keys shared by every process of the account
    """

    @abstractmethod
    async def try_acquire(self, key: GuardKey) -> bool:
        """
        Atomically check-and-insert `key`.

        Returns:
            True if the key was free and is now held by the caller
            False if an operation for the key is already in flight
        """
        pass

    @abstractmethod
    async def release(self, key: GuardKey) -> None:
        """Remove `key`. Releasing a key that is not held is a no-op."""
        pass

    @abstractmethod
    async def is_held(self, key: GuardKey) -> bool:
        pass

    @asynccontextmanager
    async def hold(self, key: GuardKey) -> AsyncIterator[GuardKey]:
        """
        Hold `key` for the duration of the block.

        Raises AlreadyProcessingError without entering the block when the key
        is taken. Release runs on every exit path, exceptions included.
        """
        if not await self.try_acquire(key):
            raise AlreadyProcessingError(key)
        try:
            yield key
        finally:
            await self.release(key)
