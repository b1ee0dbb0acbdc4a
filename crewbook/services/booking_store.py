"""
In-memory booking store behind the reference booking service.

This is the authoritative side of the protocol the client core talks to:
it owns status transitions, QR token matching and hours calculation.

CONSISTENCY
===========

  Every operation below is synchronous and never awaits, so on a single
  event loop each one runs to completion before the next request touches
  the store. That is what makes "check status, then write" safe here without
  row versions or locks.

HOURS
=====

  total    = checkout - checkin, in hours
  regular  = min(total, assigned_hours or STANDARD_SHIFT_HOURS)
  overtime = total - regular

  Hours go out as strings with one decimal ("8.0"), the way the production
  service sends them.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Union

from fastapi import HTTPException, status

from crewbook.core.config import get_settings
from crewbook.core.logging import get_logger
from crewbook.core.metrics import record_verification
from crewbook.models.booking import Booking, BookingWorkerAssignment
from crewbook.models.status import BookingStatus, ScanAction
from crewbook.schemas.verification import ScanVerifyRequest
from crewbook.services.ledger import hours_between
from crewbook.services.lifecycle import MANUAL_EVENTS, TRANSITIONS

logger = get_logger(__name__)

Clock = Callable[[], datetime]

_EVENT_FOR_TARGET = {target: event for event, target in MANUAL_EVENTS.items()}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_token() -> str:
    return uuid.uuid4().hex


def _hours(value: float) -> str:
    return f"{value:.1f}"


class BookingStore:
    def __init__(self, clock: Optional[Clock] = None, standard_shift_hours: Optional[float] = None):
        self.clock = clock or _now
        self.standard_shift_hours = (
            standard_shift_hours
            if standard_shift_hours is not None
            else get_settings().STANDARD_SHIFT_HOURS
        )
        self._bookings: dict[str, Booking] = {}
        self._owners: dict[str, str] = {}

    # -------- seeding / reads --------

    def add(self, booking: Union[Booking, dict], customer_id: str) -> Booking:
        if not isinstance(booking, Booking):
            booking = Booking.model_validate(booking)
        self._bookings[booking.id] = booking
        self._owners[booking.id] = str(customer_id)
        return booking

    def get(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(str(booking_id))

    def list_for(
        self, customer_id: str, statuses: Optional[Iterable[BookingStatus]] = None
    ) -> list[Booking]:
        wanted = set(statuses) if statuses else None
        return [
            booking
            for booking_id, booking in self._bookings.items()
            if self._owners.get(booking_id) == customer_id
            and (wanted is None or booking.status in wanted)
        ]

    def _owned(self, customer_id: str, booking_id: str) -> Booking:
        booking = self.get(booking_id)
        if booking is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Booking {booking_id} not found",
            )
        if self._owners.get(booking.id) != customer_id:
            logger.warning("booking_access_denied", booking_id=booking.id, customer_id=customer_id)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have access to this booking",
            )
        return booking

    # -------- manual status updates --------

    def update_status(self, customer_id: str, booking_id: str, target: BookingStatus) -> Booking:
        """
        Apply a customer-initiated status change.
        Idempotent when the booking is already in `target`.
        """
        booking = self._owned(customer_id, booking_id)

        event = _EVENT_FOR_TARGET.get(target)
        if event is None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Status '{target.value}' cannot be set directly",
            )
        if booking.status is target:
            return booking
        if TRANSITIONS.get((booking.status, event)) is not target:
            logger.warning(
                "status_update_rejected",
                booking_id=booking.id,
                from_status=booking.status.value,
                to_status=target.value,
            )
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Cannot change a {booking.status.value} booking to {target.value}",
            )

        updated = booking.model_copy(update={"status": target})
        self._bookings[booking.id] = updated
        logger.info(
            "booking_status_updated",
            booking_id=booking.id,
            from_status=booking.status.value,
            to_status=target.value,
        )
        return updated

    # -------- QR scans --------

    def scan(self, customer_id: str, request: ScanVerifyRequest) -> dict:
        booking = self._owned(customer_id, request.booking_id)
        assignment = booking.find_assignment(request.qr_code.strip())

        if assignment is None:
            record_verification(request.action.value, accepted=False)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid QR code for this booking",
            )

        if booking.status is BookingStatus.CONFIRMED:
            expected = ScanAction.CHECKIN
        elif booking.status is BookingStatus.IN_PROGRESS:
            expected = ScanAction.CHECKOUT
        else:
            record_verification(request.action.value, accepted=False)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"QR codes cannot be scanned for a {booking.status.value} booking",
            )

        if request.action is not expected:
            record_verification(request.action.value, accepted=False)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"This booking expects {expected.value}, not {request.action.value}",
            )

        if expected is ScanAction.CHECKIN:
            result = self._checkin(booking, assignment)
        else:
            result = self._checkout(booking, assignment)
        record_verification(request.action.value, accepted=True)
        return result

    def _replace(
        self, booking: Booking, assignment: BookingWorkerAssignment, new_status: BookingStatus, **changes
    ) -> Booking:
        workers = [
            item.model_copy(update=changes) if item.id == assignment.id else item
            for item in booking.booking_workers
        ]
        updated = booking.model_copy(update={"status": new_status, "booking_workers": workers})
        self._bookings[booking.id] = updated
        return updated

    def _checkin(self, booking: Booking, assignment: BookingWorkerAssignment) -> dict:
        now = self.clock()
        self._replace(booking, assignment, BookingStatus.IN_PROGRESS, checkin_time=now, checkout_time=None)
        name = assignment.worker.name or "Worker"
        logger.info("worker_checked_in", booking_id=booking.id, assignment_id=assignment.id)
        return {
            "success": True,
            "worker_name": name,
            "checkin_time": now.isoformat(),
            "booking_status": BookingStatus.IN_PROGRESS.value,
            "message": f"{name} has checked in successfully. Work is now in progress.",
        }

    def _checkout(self, booking: Booking, assignment: BookingWorkerAssignment) -> dict:
        if not assignment.is_checked_in:
            record_verification(ScanAction.CHECKOUT.value, accepted=False)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="This worker has not checked in",
            )

        checkin = assignment.checkin_time
        now = self.clock()
        if now <= checkin:
            # Clock resolution; checkout must be strictly after checkin
            now = checkin + timedelta(seconds=1)

        total = hours_between(checkin, now)
        cap = assignment.assigned_hours or self.standard_shift_hours
        regular = min(total, cap)
        overtime = max(total - cap, 0.0)

        still_working = any(
            item.is_checked_in for item in booking.booking_workers if item.id != assignment.id
        )
        new_status = BookingStatus.IN_PROGRESS if still_working else BookingStatus.COMPLETED
        # A used token must not check the worker in again
        self._replace(booking, assignment, new_status, checkout_time=now, qr_token=_new_token())

        name = assignment.worker.name or "Worker"
        logger.info(
            "worker_checked_out",
            booking_id=booking.id,
            assignment_id=assignment.id,
            total_hours=total,
            booking_status=new_status.value,
        )
        return {
            "success": True,
            "worker_name": name,
            "checkin_time": checkin.isoformat(),
            "checkout_time": now.isoformat(),
            "total_hours": _hours(total),
            "regular_hours": _hours(regular),
            "overtime_hours": _hours(overtime),
            "booking_status": new_status.value,
            "message": f"{name} has checked out. Total hours worked: {_hours(total)}",
        }
