"""
Closed enumerations for booking status, scan action and duration unit.

Backend status strings are free text ("Confirmed", " in_progress "); they are
normalized once, here, and anything that is not a known status raises
UnknownStatusError instead of falling through to a default branch.
"""

from enum import Enum
from typing import Optional

from crewbook.core.errors import UnknownStatusError


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, raw: object) -> "BookingStatus":
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str):
            raise UnknownStatusError(raw)
        try:
            return cls(raw.strip().lower())
        except ValueError:
            raise UnknownStatusError(raw) from None

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.COMPLETED, BookingStatus.CANCELLED)


class ScanAction(str, Enum):
    CHECKIN = "checkin"
    CHECKOUT = "checkout"


class DurationUnit(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    FULL_TIME = "full_time"

    def plural(self, value: float) -> str:
        if self is DurationUnit.FULL_TIME:
            return "full time"
        return self.value if value == 1 else f"{self.value}s"

    @classmethod
    def parse(cls, raw: object) -> Optional["DurationUnit"]:
        if raw is None or isinstance(raw, cls):
            return raw
        normalized = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
        if normalized.endswith("s") and normalized[:-1] in {unit.value for unit in cls}:
            normalized = normalized[:-1]
        return cls(normalized)

