"""
Verification engine: turns a scanned QR code into a check-in or check-out.

The action is never chosen by the caller. It follows from the booking status:

    confirmed   -> checkin
    in_progress -> checkout
    anything else -> InvalidStateForScan, before any remote call

Camera reads and manually typed codes take the same path through `verify`.

Order of checks (all local checks run before the guard and the network):
  1. booking is loaded                 -> UnknownBooking
  2. status resolves to an action      -> InvalidStateForScan
  3. code belongs to the booking       -> CodeMismatch (guard untouched)
  4. guard key (booking, worker) free  -> AlreadyProcessing
  5. scanVerify, then plan + commit while still holding the key
"""

import threading
from typing import Optional

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
from crewbook.core.metrics import record_guard_rejection, record_scan_attempt
from crewbook.models.booking import Booking, BookingWorkerAssignment
from crewbook.models.status import BookingStatus, ScanAction
from crewbook.schemas.outcome import Failure, ScanOutcome
from crewbook.schemas.verification import ScanEvent, VerificationResult
from crewbook.services.classifier import classify_exception, make_failure
from crewbook.services.interfaces.guard import GuardKey, InFlightGuard
from crewbook.services.ledger import AttendanceLedger
from crewbook.services.lifecycle import BookingEvent, BookingLifecycleController

logger = get_logger(__name__)

SCAN_FAILED_TITLE = "QR Scan Failed"


def resolve_action(status: BookingStatus) -> Optional[ScanAction]:
    if status is BookingStatus.CONFIRMED:
        return ScanAction.CHECKIN
    if status is BookingStatus.IN_PROGRESS:
        return ScanAction.CHECKOUT
    return None


class ScanSession:
    """
    Scanning flag for one open scanner.

    While a scan is being processed further camera callbacks are dropped:
    a single code held in front of the camera produces a burst of reads.
    The flag sits in front of the engine's guard and is independent of it.
    """

    def __init__(
        self,
        engine: "VerificationEngine",
        booking_id: str,
        worker_id: Optional[str] = None,
    ):
        self.engine = engine
        self.booking_id = str(booking_id)
        self.worker_id = worker_id
        self._scanning = False
        self._lock = threading.Lock()

    @property
    def scanning(self) -> bool:
        return self._scanning

    def try_acquire(self) -> bool:
        with self._lock:
            if self._scanning:
                return False
            self._scanning = True
            return True

    def release(self) -> None:
        with self._lock:
            self._scanning = False

    async def scan(self, code: str) -> ScanOutcome:
        return await self.engine.verify(self.booking_id, code, self.worker_id)


class VerificationEngine:
    def __init__(
        self,
        controller: BookingLifecycleController,
        ledger: Optional[AttendanceLedger] = None,
        guard: Optional[InFlightGuard] = None,
    ):
        self.controller = controller
        self.ledger = ledger or AttendanceLedger()
        self.guard = guard or controller.guard

    def open_session(self, booking_id: str, worker_id: Optional[str] = None) -> ScanSession:
        return ScanSession(self, booking_id, worker_id)

    def resolve(self, booking_id: str) -> Optional[ScanAction]:
        booking = self.controller.get(booking_id)
        return resolve_action(booking.status) if booking else None

    async def verify(
        self, booking_id: str, code: Optional[str], worker_id: Optional[str] = None
    ) -> ScanOutcome:
        booking_id = str(booking_id)
        code = (code or "").strip()
        booking = self.controller.get(booking_id)

        if booking is None:
            return self._reject(
                make_failure(
                    ErrorKind.UNKNOWN_BOOKING,
                    title=SCAN_FAILED_TITLE,
                    booking_id=booking_id,
                    worker_id=worker_id,
                )
            )

        action = resolve_action(booking.status)
        if action is None:
            logger.info("scan_rejected_state", booking_id=booking_id, status=booking.status.value)
            return self._reject(
                make_failure(
                    ErrorKind.INVALID_STATE_FOR_SCAN,
                    title=SCAN_FAILED_TITLE,
                    booking_id=booking_id,
                    worker_id=worker_id,
                    status=booking.status,
                ),
                booking=booking,
            )

        assignment = booking.find_assignment(code, worker_id) if code else None
        if not code or (assignment is None and booking.has_known_tokens):
            logger.info("scan_rejected_code", booking_id=booking_id, worker_id=worker_id)
            return ScanOutcome(
                ok=False,
                action=action,
                booking=booking,
                failure=make_failure(
                    ErrorKind.CODE_MISMATCH,
                    title=SCAN_FAILED_TITLE,
                    booking_id=booking_id,
                    worker_id=worker_id,
                    action=action.value,
                    status=booking.status,
                ),
            )

        if assignment is not None:
            worker_id = assignment.worker_id or worker_id
        scan = ScanEvent(
            raw_payload=code,
            action=action,
            booking_id=booking_id,
            worker_id=worker_id,
            assignment_id=assignment.id if assignment else None,
        )
        key = GuardKey(booking_id, worker_id or scan.assignment_id)

        with booking_context(booking_id, worker_id=worker_id, action=action.value):
            try:
                async with self.guard.hold(key):
                    logger.info("scan_submitted")
                    result = await self.controller.service.scan_verify(scan.to_request())
                    return self._apply(booking, scan, result)
            except AlreadyProcessingError as e:
                record_guard_rejection("scan")
                return self._reject(self._classify(e, booking, scan), booking=booking)
            except (NetworkUnavailableError, RemoteStatusError) as e:
                logger.warning("scan_call_failed", error=str(e))
                return self._reject(self._classify(e, booking, scan), booking=booking)

    # -------- helpers --------

    def _classify(self, exc: Exception, booking: Booking, scan: ScanEvent) -> Failure:
        return classify_exception(
            exc,
            booking_id=booking.id,
            worker_id=scan.worker_id,
            action=scan.action.value,
            status=booking.status,
            title=SCAN_FAILED_TITLE,
        )

    def _reject(self, failure: Failure, booking: Optional[Booking] = None) -> ScanOutcome:
        action = ScanAction(failure.action) if failure.action else None
        record_scan_attempt(failure.action or "none", failure.kind.value)
        return ScanOutcome(ok=False, action=action, booking=booking, failure=failure)

    def _apply(self, booking: Booking, scan: ScanEvent, result: VerificationResult) -> ScanOutcome:
        def rejected(kind: ErrorKind, message: Optional[str] = None) -> ScanOutcome:
            current = self.controller.get(booking.id) or booking
            return self._reject(
                make_failure(
                    kind,
                    message,
                    title=SCAN_FAILED_TITLE,
                    booking_id=booking.id,
                    worker_id=scan.worker_id,
                    action=scan.action.value,
                    status=current.status,
                ),
                booking=current,
            )

        if not result.success:
            logger.info("scan_rejected_backend", booking_id=booking.id, message=result.message)
            return rejected(ErrorKind.BACKEND_REJECTED, result.message)

        assignment_id = scan.assignment_id or self._locate_assignment(booking, scan, result)
        event = BookingEvent.for_scan(scan.action)
        try:
            planned = self.controller.plan_scan(
                booking.id, assignment_id, scan.action, result, scan.scanned_at
            )
            committed = self.controller.commit(planned, event)
        except UnknownStatusError as e:
            logger.warning("scan_unknown_status", booking_id=booking.id, status=e.raw)
            return rejected(ErrorKind.UNKNOWN_STATUS)
        except InvalidTransitionError as e:
            logger.warning("scan_unexpected_status", booking_id=booking.id,
                           from_status=e.current, reported=e.target)
            return rejected(
                ErrorKind.BACKEND_REJECTED,
                f"The booking service reported an unexpected status ({e.target}) "
                f"for a {booking.status.value} booking. Refresh bookings.",
            )
        except ValidationError:
            logger.warning("scan_inconsistent_times", booking_id=booking.id,
                           assignment_id=assignment_id)
            return rejected(
                ErrorKind.BACKEND_REJECTED,
                "The booking service returned inconsistent attendance times.",
            )
        except KeyError:
            return rejected(ErrorKind.UNKNOWN_BOOKING)

        attendance = None
        if assignment_id is not None:
            self.ledger.record(booking.id, assignment_id, result)
            attendance = self.ledger.view_assignment(committed, assignment_id)

        record_scan_attempt(scan.action.value, "success")
        logger.info(
            "scan_verified",
            booking_id=booking.id,
            worker_id=scan.worker_id,
            action=scan.action.value,
            status=committed.status.value,
        )
        title, message = self._success_text(scan.action, result, attendance)
        return ScanOutcome(
            ok=True,
            action=scan.action,
            booking=committed,
            attendance=attendance,
            title=title,
            message=result.message or message,
        )

    @staticmethod
    def _locate_assignment(
        booking: Booking, scan: ScanEvent, result: VerificationResult
    ) -> Optional[str]:
        """Find the assignment when tokens are not known locally."""
        candidates: list[BookingWorkerAssignment] = booking.booking_workers
        if scan.worker_id is not None:
            candidates = [a for a in candidates if a.worker_id == scan.worker_id]
        elif result.worker_name:
            named = [a for a in candidates if a.worker.name == result.worker_name]
            candidates = named or candidates
        return candidates[0].id if len(candidates) == 1 else None

    @staticmethod
    def _success_text(action: ScanAction, result: VerificationResult, attendance) -> tuple[str, str]:
        worker = result.worker_name or (attendance.worker_name if attendance else None) or "Worker"
        if action is ScanAction.CHECKIN:
            return (
                "Work Started!",
                f"{worker} has checked in successfully. Work is now in progress.",
            )
        total = result.total_hours if result.total_hours is not None else "N/A"
        return "Work Completed!", f"{worker} has checked out. Total hours worked: {total}"
