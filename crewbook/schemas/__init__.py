from crewbook.schemas.verification import ScanVerifyRequest, VerificationResult, ScanEvent
from crewbook.schemas.status import StatusUpdateRequest, StatusUpdateResponse
from crewbook.schemas.outcome import (
    Failure, AttendanceView, TransitionOutcome, ScanOutcome, RefreshOutcome,
)

__all__ = [
    "ScanVerifyRequest", "VerificationResult", "ScanEvent",
    "StatusUpdateRequest", "StatusUpdateResponse",
    "Failure", "AttendanceView", "TransitionOutcome", "ScanOutcome", "RefreshOutcome",
]
