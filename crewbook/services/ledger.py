"""
Attendance ledger: client-side projection of verification results.

The backend owns attendance. The ledger only keeps the latest
VerificationResult per assignment and derives display fields from it plus
the committed assignment timestamps. Missing backend fields fall back to
neutral values: 0.0 for hours, "N/A" for formatted times.
"""

from datetime import datetime, timezone
from typing import Optional

from crewbook.models.booking import Booking, BookingWorkerAssignment
from crewbook.models.status import BookingStatus
from crewbook.schemas.outcome import AttendanceView
from crewbook.schemas.verification import VerificationResult

NOT_AVAILABLE = "N/A"


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def format_time(value: Optional[datetime]) -> str:
    if value is None:
        return NOT_AVAILABLE
    return value.strftime("%I:%M %p")


def hours_between(start: datetime, end: datetime) -> float:
    seconds = (_aware(end) - _aware(start)).total_seconds()
    return round(max(seconds, 0.0) / 3600, 2)


def project_assignment(
    assignment: BookingWorkerAssignment,
    result: Optional[VerificationResult],
    booking_status: BookingStatus,
    now: Optional[datetime] = None,
) -> AttendanceView:
    checkin = assignment.checkin_time or (result.checkin_time if result else None)
    checkout = assignment.checkout_time or (result.checkout_time if result else None)
    working = checkin is not None and checkout is None

    if result is not None and result.total_hours is not None:
        total = result.total_hours
    elif checkin is not None and checkout is not None:
        total = hours_between(checkin, checkout)
    elif working and booking_status is BookingStatus.IN_PROGRESS:
        total = hours_between(checkin, now or datetime.now(timezone.utc))
    else:
        total = 0.0

    regular = result.regular_hours if result and result.regular_hours is not None else 0.0
    overtime = result.overtime_hours if result and result.overtime_hours is not None else 0.0

    if checkout is not None:
        badge = "CHECKED OUT"
    elif checkin is not None:
        badge = "WORKING"
    else:
        badge = "NOT STARTED"

    worker_name = (result.worker_name if result else None) or assignment.worker.name or "Worker"

    return AttendanceView(
        assignment_id=assignment.id,
        worker_id=assignment.worker_id,
        worker_name=worker_name,
        checkin_time=checkin,
        checkout_time=checkout,
        checkin_display=format_time(checkin),
        checkout_display=format_time(checkout),
        total_hours=total,
        regular_hours=regular,
        overtime_hours=overtime,
        is_working=working,
        badge=badge,
    )


class AttendanceLedger:
    """Latest verification result per (booking, assignment)."""

    def __init__(self):
        self._results: dict[tuple[str, str], VerificationResult] = {}

    def record(self, booking_id: str, assignment_id: str, result: VerificationResult) -> None:
        self._results[(booking_id, assignment_id)] = result

    def latest(self, booking_id: str, assignment_id: str) -> Optional[VerificationResult]:
        return self._results.get((booking_id, assignment_id))

    def forget(self, booking_id: str) -> None:
        for key in [k for k in self._results if k[0] == booking_id]:
            del self._results[key]

    def view_assignment(
        self, booking: Booking, assignment_id: str, now: Optional[datetime] = None
    ) -> Optional[AttendanceView]:
        assignment = booking.assignment(assignment_id)
        if assignment is None:
            return None
        return project_assignment(
            assignment, self.latest(booking.id, assignment_id), booking.status, now
        )

    def view(self, booking: Booking, now: Optional[datetime] = None) -> list[AttendanceView]:
        return [
            project_assignment(item, self.latest(booking.id, item.id), booking.status, now)
            for item in booking.booking_workers
        ]
