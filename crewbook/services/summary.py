"""
Display projections for booking lists and cards.

Pure functions over committed booking state; nothing here mutates a booking
or talks to the backend.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable, Optional, Union

from crewbook.core.errors import UnknownStatusError
from crewbook.models.booking import Booking
from crewbook.models.status import BookingStatus, DurationUnit

STATUS_SUCCESS_MESSAGES = {
    BookingStatus.CONFIRMED: "Booking confirmed successfully! Worker will be notified.",
    BookingStatus.CANCELLED: "Booking cancelled successfully.",
    BookingStatus.COMPLETED: "Booking marked as completed!",
    BookingStatus.IN_PROGRESS: "Work started successfully!",
}

STATUS_FAILURE_MESSAGES = {
    BookingStatus.CONFIRMED: "Failed to confirm booking. Please try again.",
    BookingStatus.CANCELLED: "Failed to cancel booking. Please try again.",
    BookingStatus.COMPLETED: "Failed to mark booking as completed. Please try again.",
    BookingStatus.IN_PROGRESS: "Failed to start work. Please try again.",
}

HISTORY_STATUSES = (
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
)

CANCELLABLE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


@dataclass(frozen=True)
class StatusBadge:
    label: str
    tone: str


@dataclass(frozen=True)
class PrimaryAction:
    key: str  # confirm, scan_checkin, scan_checkout
    label: str


@dataclass(frozen=True)
class ScanPrompt:
    title: str
    instruction: str


@dataclass
class BookingStats:
    total: int = 0
    total_value: float = 0.0
    by_status: dict[BookingStatus, int] = field(
        default_factory=lambda: {status: 0 for status in BookingStatus}
    )


_BADGES = {
    BookingStatus.PENDING: StatusBadge("PENDING", "muted"),
    BookingStatus.CONFIRMED: StatusBadge("CONFIRMED", "primary"),
    BookingStatus.IN_PROGRESS: StatusBadge("WORKING", "active"),
    BookingStatus.COMPLETED: StatusBadge("COMPLETED", "success"),
    BookingStatus.CANCELLED: StatusBadge("CANCELLED", "danger"),
}

UNKNOWN_BADGE = StatusBadge("UNKNOWN", "muted")


def _coerce_status(status: Union[BookingStatus, str, None]) -> Optional[BookingStatus]:
    try:
        return BookingStatus.parse(status)
    except UnknownStatusError:
        return None


def status_badge(status: Union[BookingStatus, str, None]) -> StatusBadge:
    parsed = _coerce_status(status)
    return _BADGES[parsed] if parsed else UNKNOWN_BADGE


def primary_action(status: Union[BookingStatus, str, None]) -> Optional[PrimaryAction]:
    """The main button shown on a booking card, or None for terminal/unknown states."""
    parsed = _coerce_status(status)
    if parsed is BookingStatus.PENDING:
        return PrimaryAction("confirm", "Confirm Booking")
    if parsed is BookingStatus.CONFIRMED:
        return PrimaryAction("scan_checkin", "Start Work (Scan QR)")
    if parsed is BookingStatus.IN_PROGRESS:
        return PrimaryAction("scan_checkout", "End Work (Scan QR)")
    return None


def scan_prompt(status: Union[BookingStatus, str, None]) -> ScanPrompt:
    parsed = _coerce_status(status)
    if parsed is BookingStatus.CONFIRMED:
        return ScanPrompt(
            "Scan QR to Start Work",
            "Ask the worker to show their QR code to check in and start work",
        )
    if parsed is BookingStatus.IN_PROGRESS:
        return ScanPrompt(
            "Scan QR to End Work",
            "Ask the worker to show their QR code to check out and complete work",
        )
    return ScanPrompt("Scan QR Code", "Position the QR code within the frame to scan")


def can_cancel(booking: Booking) -> bool:
    return booking.status in CANCELLABLE_STATUSES


def is_overdue(booking: Booking, now: Optional[datetime] = None) -> bool:
    if booking.booking_date is None or booking.status.is_terminal:
        return False
    now = now or datetime.now(timezone.utc)
    booking_date = booking.booking_date
    if booking_date.tzinfo is None:
        booking_date = booking_date.replace(tzinfo=timezone.utc)
    return booking_date < now


def days_until_label(booking_date: Union[date, datetime], today: Optional[date] = None) -> str:
    if isinstance(booking_date, datetime):
        booking_date = booking_date.date()
    today = today or date.today()
    diff = (booking_date - today).days
    if diff < 0:
        return f"{abs(diff)} days overdue"
    if diff == 0:
        return "Today"
    if diff == 1:
        return "Tomorrow"
    return f"In {diff} days"


def duration_label(value: Optional[float], unit: Union[DurationUnit, str, None]) -> str:
    if not value or not unit:
        return "Duration not specified"
    try:
        unit = DurationUnit.parse(unit)
    except ValueError:
        return "Duration not specified"
    amount = int(value) if float(value).is_integer() else value
    return f"{amount} {unit.plural(value)}"


def booking_stats(bookings: Iterable[Booking]) -> BookingStats:
    stats = BookingStats()
    for booking in bookings:
        stats.total += 1
        stats.by_status[booking.status] += 1
        stats.total_value += booking.total_price
    return stats


def history_bookings(bookings: Iterable[Booking]) -> list[Booking]:
    return [b for b in bookings if b.status in HISTORY_STATUSES]
