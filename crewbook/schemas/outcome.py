"""
Typed results returned across the controller / verification engine boundary.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from crewbook.core.errors import ErrorKind
from crewbook.models.booking import Booking
from crewbook.models.status import BookingStatus, ScanAction


class Failure(BaseModel):
    kind: ErrorKind
    message: str
    title: str = "Something went wrong"
    retryable: bool = False
    booking_id: Optional[str] = None
    worker_id: Optional[str] = None
    # What was attempted and the last known status, so the caller can offer retry or refresh
    action: Optional[str] = None
    status: Optional[BookingStatus] = None


class AttendanceView(BaseModel):
    assignment_id: str
    worker_id: Optional[str] = None
    worker_name: str
    checkin_time: Optional[datetime] = None
    checkout_time: Optional[datetime] = None
    checkin_display: str = "N/A"
    checkout_display: str = "N/A"
    total_hours: float = 0.0
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    is_working: bool = False
    badge: str


class TransitionOutcome(BaseModel):
    ok: bool
    booking: Optional[Booking] = None
    failure: Optional[Failure] = None
    message: Optional[str] = None
    changed: bool = False


class ScanOutcome(BaseModel):
    ok: bool
    action: Optional[ScanAction] = None
    booking: Optional[Booking] = None
    attendance: Optional[AttendanceView] = None
    failure: Optional[Failure] = None
    title: Optional[str] = None
    message: Optional[str] = None


class RefreshOutcome(BaseModel):
    ok: bool
    bookings: list[Booking] = []
    # booking id -> reason, for items skipped during hydration
    rejected: dict[str, str] = {}
    failure: Optional[Failure] = None
