"""
Booking lifecycle controller.

STATE MACHINE
=============

  pending --confirm--> confirmed --scan(checkin)--> in_progress --scan(checkout)--> completed
     |                     |                             |
     +------cancel---------+--cancel--> cancelled        +--manual complete--> completed

  completed and cancelled are terminal. A checkout scan may also leave the
  booking in_progress when other checked-in workers are still on site; only
  the assignment's attendance changes in that case.

COMMIT STRATEGY: Server-confirmed, never optimistic
===================================================

  1. Validate the current local state permits the transition
  2. Hold the in-flight guard for the booking key
  3. Call the booking service
  4. Only on a success response, install the server-confirmed status

  Failures at any step leave local state exactly as it was and come back as
  a typed Failure. `commit` is the single writer of booking state and it
  re-checks the edge against the table, so a status outside the table can
  never be installed, even if the booking was refreshed while a call was in
  flight.

Idempotence:
  Asking for the state the booking is already in (confirm on confirmed) is a
  success with no remote call and no field changes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import ValidationError

from crewbook.core.errors import (
    AlreadyProcessingError,
    ErrorKind,
    InvalidTransitionError,
    NetworkUnavailableError,
    RemoteStatusError,
    UnknownStatusError,
)
from crewbook.core.logging import booking_context, get_logger
from crewbook.core.metrics import record_guard_rejection, record_status_update
from crewbook.models.booking import Booking, BookingWorkerAssignment
from crewbook.models.status import BookingStatus, ScanAction
from crewbook.schemas.outcome import RefreshOutcome, TransitionOutcome
from crewbook.schemas.verification import VerificationResult
from crewbook.services.classifier import classify_exception, make_failure
from crewbook.services.interfaces.booking_service import BookingService
from crewbook.services.interfaces.guard import GuardKey, InFlightGuard
from crewbook.services.interfaces.local_guard import LocalInFlightGuard
from crewbook.services.summary import STATUS_FAILURE_MESSAGES, STATUS_SUCCESS_MESSAGES

logger = get_logger(__name__)

Listener = Callable[[Booking], Any]


class BookingEvent(str, Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    CHECKIN = "checkin"
    CHECKOUT = "checkout"
    COMPLETE = "complete"

    @classmethod
    def for_scan(cls, action: ScanAction) -> "BookingEvent":
        return cls.CHECKIN if action is ScanAction.CHECKIN else cls.CHECKOUT


TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], BookingStatus] = {
    (BookingStatus.PENDING, BookingEvent.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.CHECKIN): BookingStatus.IN_PROGRESS,
    (BookingStatus.IN_PROGRESS, BookingEvent.CHECKOUT): BookingStatus.COMPLETED,
    (BookingStatus.IN_PROGRESS, BookingEvent.COMPLETE): BookingStatus.COMPLETED,
}

# Statuses the backend may report after a successful event
ALLOWED_RESULTS: dict[tuple[BookingStatus, BookingEvent], frozenset[BookingStatus]] = {
    edge: frozenset({target}) for edge, target in TRANSITIONS.items()
}
ALLOWED_RESULTS[(BookingStatus.IN_PROGRESS, BookingEvent.CHECKOUT)] = frozenset(
    {BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED}
)

MANUAL_EVENTS = {
    BookingEvent.CONFIRM: BookingStatus.CONFIRMED,
    BookingEvent.CANCEL: BookingStatus.CANCELLED,
    BookingEvent.COMPLETE: BookingStatus.COMPLETED,
}


def next_status(current: BookingStatus, event: BookingEvent) -> BookingStatus:
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(current.value, event.value) from None


def is_permitted(current: BookingStatus, event: BookingEvent, target: BookingStatus) -> bool:
    return target in ALLOWED_RESULTS.get((current, event), frozenset())


class BookingLifecycleController:
    """In-memory booking state, mutated only through server-confirmed transitions."""

    def __init__(self, service: BookingService, guard: Optional[InFlightGuard] = None):
        self.service = service
        self.guard = guard or LocalInFlightGuard()
        self._bookings: dict[str, Booking] = {}
        self._listeners: list[Listener] = []

    # -------- state access --------

    def get(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(str(booking_id))

    def bookings(self) -> list[Booking]:
        return list(self._bookings.values())

    def hydrate(self, items: Iterable[Union[Booking, dict]], replace: bool = True) -> dict[str, str]:
        """
        Load bookings into memory. Returns {booking_id: reason} for items
        that were skipped (unknown status or invariant violation).
        """
        loaded: dict[str, Booking] = {}
        rejected: dict[str, str] = {}
        for item in items:
            if isinstance(item, Booking):
                loaded[item.id] = item
                continue
            ident = str(item.get("id", "?")) if isinstance(item, dict) else "?"
            try:
                booking = Booking.model_validate(item)
            except UnknownStatusError as e:
                rejected[ident] = f"unknown status {e.raw!r}"
                continue
            except ValidationError as e:
                rejected[ident] = f"invalid booking: {e.error_count()} error(s)"
                continue
            loaded[booking.id] = booking

        if replace:
            self._bookings = loaded
        else:
            self._bookings.update(loaded)

        if rejected:
            logger.warning("bookings_skipped", count=len(rejected), booking_ids=list(rejected))
        return rejected

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, booking: Booking) -> None:
        for listener in list(self._listeners):
            try:
                listener(booking)
            except Exception as e:
                # A screen that went away while a call was in flight
                logger.warning("listener_failed", booking_id=booking.id, error=str(e))

    # -------- hydration --------

    async def refresh(self, statuses: Optional[Iterable[BookingStatus]] = None) -> RefreshOutcome:
        """
        Reload bookings from the service. With a status filter the fetched
        bookings are merged into memory; without one they replace it.
        """
        statuses = list(statuses) if statuses else None
        try:
            items = await self.service.list_bookings(statuses)
        except (NetworkUnavailableError, RemoteStatusError) as e:
            failure = classify_exception(e, action="refresh", title="Refresh Failed")
            logger.warning("bookings_refresh_failed", kind=failure.kind.value)
            return RefreshOutcome(ok=False, bookings=self.bookings(), failure=failure)

        rejected = self.hydrate(items, replace=statuses is None)
        logger.info("bookings_refreshed", count=len(self._bookings), skipped=len(rejected))
        return RefreshOutcome(ok=True, bookings=self.bookings(), rejected=rejected)

    # -------- manual transitions --------

    async def confirm(self, booking_id: str) -> TransitionOutcome:
        return await self._transition(booking_id, BookingEvent.CONFIRM)

    async def cancel(self, booking_id: str) -> TransitionOutcome:
        return await self._transition(booking_id, BookingEvent.CANCEL)

    async def complete(self, booking_id: str) -> TransitionOutcome:
        return await self._transition(booking_id, BookingEvent.COMPLETE)

    async def _transition(self, booking_id: str, event: BookingEvent) -> TransitionOutcome:
        booking_id = str(booking_id)
        with booking_context(booking_id, event=event.value):
            return await self._run_transition(booking_id, event)

    async def _run_transition(self, booking_id: str, event: BookingEvent) -> TransitionOutcome:
        target = MANUAL_EVENTS[event]
        booking = self.get(booking_id)

        if booking is None:
            record_status_update(target.value, ErrorKind.UNKNOWN_BOOKING.value)
            return TransitionOutcome(
                ok=False,
                failure=make_failure(
                    ErrorKind.UNKNOWN_BOOKING, booking_id=booking_id, action=event.value
                ),
            )

        if booking.status is target:
            logger.info("transition_already_applied", booking_id=booking_id, status=target.value)
            return TransitionOutcome(ok=True, booking=booking, changed=False,
                                     message=STATUS_SUCCESS_MESSAGES[target])

        current = booking.status
        if (current, event) not in TRANSITIONS:
            logger.warning(
                "transition_rejected_locally",
                booking_id=booking_id,
                status=current.value,
                event=event.value,
            )
            record_status_update(target.value, ErrorKind.INVALID_TRANSITION.value)
            return TransitionOutcome(
                ok=False,
                booking=booking,
                failure=make_failure(
                    ErrorKind.INVALID_TRANSITION,
                    booking_id=booking_id,
                    action=event.value,
                    status=current,
                ),
            )

        try:
            async with self.guard.hold(GuardKey(booking_id)):
                response = await self.service.update_booking_status(booking_id, target)
        except AlreadyProcessingError as e:
            record_guard_rejection("status")
            return self._failed(booking, event, e)
        except (NetworkUnavailableError, RemoteStatusError) as e:
            return self._failed(booking, event, e)

        if not response.success:
            record_status_update(target.value, ErrorKind.BACKEND_REJECTED.value)
            return TransitionOutcome(
                ok=False,
                booking=booking,
                failure=make_failure(
                    ErrorKind.BACKEND_REJECTED,
                    response.message or STATUS_FAILURE_MESSAGES[target],
                    title="Update Failed",
                    booking_id=booking_id,
                    action=event.value,
                    status=current,
                ),
            )

        confirmed = target
        if response.status:
            try:
                confirmed = BookingStatus.parse(response.status)
            except UnknownStatusError as e:
                return self._failed(booking, event, e)
            if confirmed is not target:
                record_status_update(target.value, ErrorKind.BACKEND_REJECTED.value)
                return TransitionOutcome(
                    ok=False,
                    booking=booking,
                    failure=make_failure(
                        ErrorKind.BACKEND_REJECTED,
                        f"The booking service reported '{confirmed.value}' "
                        f"instead of '{target.value}'. Refresh bookings.",
                        title="Update Failed",
                        booking_id=booking_id,
                        action=event.value,
                        status=current,
                    ),
                )

        try:
            updated = self.commit(booking.model_copy(update={"status": confirmed}), event)
        except InvalidTransitionError as e:
            return self._failed(self.get(booking_id) or booking, event, e)

        record_status_update(target.value, "success")
        logger.info(
            "booking_transitioned",
            booking_id=booking_id,
            event=event.value,
            from_status=current.value,
            to_status=confirmed.value,
        )
        return TransitionOutcome(
            ok=True,
            booking=updated,
            changed=True,
            message=response.message or STATUS_SUCCESS_MESSAGES[confirmed],
        )

    def _failed(self, booking: Booking, event: BookingEvent, exc: Exception) -> TransitionOutcome:
        target = MANUAL_EVENTS[event]
        failure = classify_exception(
            exc,
            booking_id=booking.id,
            action=event.value,
            status=booking.status,
            title="Update Failed",
        )
        if failure.kind is ErrorKind.NETWORK_ERROR:
            failure.message = STATUS_FAILURE_MESSAGES[target]
        record_status_update(target.value, failure.kind.value)
        logger.warning(
            "booking_transition_failed",
            booking_id=booking.id,
            event=event.value,
            kind=failure.kind.value,
            error=str(exc),
        )
        return TransitionOutcome(ok=False, booking=booking, failure=failure)

    # -------- scan-driven transitions --------

    def plan_scan(
        self,
        booking_id: str,
        assignment_id: Optional[str],
        action: ScanAction,
        result: VerificationResult,
        scanned_at: Optional[datetime] = None,
    ) -> Booking:
        """
        Build the booking as it will look once `result` is applied, without
        touching stored state.

        Raises:
            KeyError: booking is not loaded
            UnknownStatusError: result carries an unparseable status
            InvalidTransitionError: reported status is not reachable for this action
            ValidationError: attendance timestamps violate the assignment invariants
        """
        booking = self._bookings[str(booking_id)]
        event = BookingEvent.for_scan(action)
        current = booking.status

        if result.booking_status:
            reported = BookingStatus.parse(result.booking_status)
        else:
            reported = next_status(current, event)

        if not is_permitted(current, event, reported):
            raise InvalidTransitionError(current.value, reported.value)

        workers = booking.booking_workers
        if assignment_id is not None:
            stamp = scanned_at or datetime.now(timezone.utc)
            workers = [
                self._stamp(item, action, result, stamp) if item.id == assignment_id else item
                for item in booking.booking_workers
            ]

        return booking.model_copy(update={"status": reported, "booking_workers": workers})

    @staticmethod
    def _stamp(
        assignment: BookingWorkerAssignment,
        action: ScanAction,
        result: VerificationResult,
        stamp: datetime,
    ) -> BookingWorkerAssignment:
        data = assignment.model_dump()
        if action is ScanAction.CHECKIN:
            data["checkin_time"] = result.checkin_time or stamp
            data["checkout_time"] = None
        else:
            checkin = assignment.checkin_time or result.checkin_time
            if checkin is None:
                # Attendance times were never hydrated; the status still follows the server
                return assignment
            data["checkin_time"] = checkin
            data["checkout_time"] = result.checkout_time or stamp
        # model_validate re-runs the checkout-after-checkin invariant
        return BookingWorkerAssignment.model_validate(data)

    def commit(self, updated: Booking, event: BookingEvent) -> Booking:
        """Install `updated` if its status is reachable from the stored one via `event`."""
        current = self._bookings.get(updated.id)
        if current is None:
            raise KeyError(updated.id)
        if not is_permitted(current.status, event, updated.status):
            raise InvalidTransitionError(current.status.value, updated.status.value)
        self._bookings[updated.id] = updated
        self._notify(updated)
        return updated
