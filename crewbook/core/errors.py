"""
Error taxonomy for the booking/attendance core.

Expected conditions never cross a component boundary as exceptions: the
controller and the verification engine turn them into a Failure (see
crewbook.schemas.outcome). The exception types below are what the lower
layers raise and what the classifier maps onto ErrorKind.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    INVALID_STATE_FOR_SCAN = "InvalidStateForScan"
    CODE_MISMATCH = "CodeMismatch"
    ALREADY_PROCESSING = "AlreadyProcessing"
    NETWORK_ERROR = "NetworkError"
    BACKEND_REJECTED = "BackendRejected"
    PERMISSION_DENIED = "PermissionDenied"
    UNKNOWN_STATUS = "UnknownStatus"
    INVALID_TRANSITION = "InvalidTransition"
    UNKNOWN_BOOKING = "UnknownBooking"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.ALREADY_PROCESSING, ErrorKind.NETWORK_ERROR)


class CrewbookError(Exception):
    """Base class for every error raised inside the package."""


class UnknownStatusError(CrewbookError):
    def __init__(self, raw: object):
        self.raw = raw
        super().__init__(f"Unknown booking status: {raw!r}")


class InvalidTransitionError(CrewbookError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move booking from {current} to {target}")


class AlreadyProcessingError(CrewbookError):
    def __init__(self, key: object):
        self.key = key
        super().__init__(f"An operation is already in flight for {key}")


# Remote call errors (raised by the booking service client)

class RemoteCallError(CrewbookError):
    """Base class for failures talking to the booking service."""


class NetworkUnavailableError(RemoteCallError):
    """Transport failure: connection refused, DNS, timeout."""


class RemoteStatusError(RemoteCallError):
    """The booking service answered with an HTTP error status."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        self.message = message or f"Booking service returned HTTP {status_code}"
        super().__init__(self.message)


class MalformedResponseError(RemoteCallError):
    """The response could not be decoded into the expected shape."""
