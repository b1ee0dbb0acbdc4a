"""
Retry / error classifier.

Maps anything that went wrong during a scan or a status update onto the
ErrorKind taxonomy and builds the Failure handed back to the caller. The
backend's own message is surfaced verbatim for BackendRejected and
PermissionDenied; everything else gets a fixed, actionable message.
"""

from typing import Optional

from crewbook.core.errors import (
    AlreadyProcessingError,
    ErrorKind,
    InvalidTransitionError,
    NetworkUnavailableError,
    RemoteStatusError,
    UnknownStatusError,
)
from crewbook.models.status import BookingStatus
from crewbook.schemas.outcome import Failure

GENERIC_BACKEND_MESSAGE = (
    "Failed to process the request. Please ensure the QR code is valid and try again."
)

# Gateway-style statuses mean the service was not reached, not that it said no
_UNAVAILABLE_STATUS_CODES = {408, 502, 503, 504}
_PERMISSION_STATUS_CODES = {401, 403}

_TITLES = {
    ErrorKind.INVALID_STATE_FOR_SCAN: "Scan Not Available",
    ErrorKind.CODE_MISMATCH: "Wrong QR Code",
    ErrorKind.ALREADY_PROCESSING: "Please Wait",
    ErrorKind.NETWORK_ERROR: "Connection Problem",
    ErrorKind.BACKEND_REJECTED: "Request Rejected",
    ErrorKind.PERMISSION_DENIED: "Not Allowed",
    ErrorKind.UNKNOWN_STATUS: "Refresh Needed",
    ErrorKind.INVALID_TRANSITION: "Action Not Available",
    ErrorKind.UNKNOWN_BOOKING: "Refresh Needed",
}


def default_message(
    kind: ErrorKind,
    action: Optional[str] = None,
    status: Optional[BookingStatus] = None,
) -> str:
    status_text = status.value.replace("_", " ") if status else "unknown"
    if kind is ErrorKind.INVALID_STATE_FOR_SCAN:
        return (
            f"This booking is {status_text}. QR codes can only be scanned for "
            "confirmed or in-progress bookings. Refresh to see the latest state."
        )
    if kind is ErrorKind.CODE_MISMATCH:
        return (
            "This QR code does not belong to the selected booking. "
            "Scan the worker's code again or enter it manually."
        )
    if kind is ErrorKind.ALREADY_PROCESSING:
        return "This request is already being processed. Please wait a moment."
    if kind is ErrorKind.NETWORK_ERROR:
        return "Could not reach the booking service. Check your connection and try again."
    if kind is ErrorKind.PERMISSION_DENIED:
        return "You are not allowed to change this booking."
    if kind is ErrorKind.UNKNOWN_STATUS:
        return "The booking service reported a status this app does not know. Refresh bookings."
    if kind is ErrorKind.INVALID_TRANSITION:
        return f"Cannot {action or 'change'} a booking that is {status_text}."
    if kind is ErrorKind.UNKNOWN_BOOKING:
        return "This booking is not loaded. Refresh bookings and try again."
    return GENERIC_BACKEND_MESSAGE


def make_failure(
    kind: ErrorKind,
    message: Optional[str] = None,
    *,
    title: Optional[str] = None,
    booking_id: Optional[str] = None,
    worker_id: Optional[str] = None,
    action: Optional[str] = None,
    status: Optional[BookingStatus] = None,
) -> Failure:
    return Failure(
        kind=kind,
        message=message or default_message(kind, action, status),
        title=title or _TITLES[kind],
        retryable=kind.retryable,
        booking_id=booking_id,
        worker_id=worker_id,
        action=action,
        status=status,
    )


def kind_for(exc: BaseException) -> ErrorKind:
    if isinstance(exc, AlreadyProcessingError):
        return ErrorKind.ALREADY_PROCESSING
    if isinstance(exc, NetworkUnavailableError):
        return ErrorKind.NETWORK_ERROR
    if isinstance(exc, RemoteStatusError):
        if exc.status_code in _PERMISSION_STATUS_CODES:
            return ErrorKind.PERMISSION_DENIED
        if exc.status_code in _UNAVAILABLE_STATUS_CODES:
            return ErrorKind.NETWORK_ERROR
        return ErrorKind.BACKEND_REJECTED
    if isinstance(exc, UnknownStatusError):
        return ErrorKind.UNKNOWN_STATUS
    if isinstance(exc, InvalidTransitionError):
        return ErrorKind.INVALID_TRANSITION
    return ErrorKind.BACKEND_REJECTED


def classify_exception(
    exc: BaseException,
    *,
    booking_id: Optional[str] = None,
    worker_id: Optional[str] = None,
    action: Optional[str] = None,
    status: Optional[BookingStatus] = None,
    title: Optional[str] = None,
) -> Failure:
    """
    Build a Failure for `exc`.

    Unexpected exceptions (malformed responses, programmer errors) become
    BackendRejected with the generic message.
    """
    kind = kind_for(exc)
    message = None
    if isinstance(exc, RemoteStatusError) and kind in (
        ErrorKind.BACKEND_REJECTED,
        ErrorKind.PERMISSION_DENIED,
    ):
        message = exc.message
    return make_failure(
        kind,
        message,
        title=title,
        booking_id=booking_id,
        worker_id=worker_id,
        action=action,
        status=status,
    )


def is_retryable(failure: Failure) -> bool:
    return failure.kind.retryable
