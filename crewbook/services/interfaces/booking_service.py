"""
Booking service interface.
The lifecycle controller and the verification engine only talk to the backend
through this contract, so the HTTP client can be swapped for an in-memory double.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from crewbook.models.status import BookingStatus
from crewbook.schemas.status import StatusUpdateResponse
from crewbook.schemas.verification import ScanVerifyRequest, VerificationResult


class BookingService(ABC):
    """
    Remote booking service operations.

    Implementations:
    - BookingServiceClient: httpx client for the real (or reference) service
    - test doubles recording calls
    """

    @abstractmethod
    async def list_bookings(
        self, statuses: Optional[Iterable[BookingStatus]] = None
    ) -> list[dict[str, Any]]:
        """
        Fetch bookings with nested worker assignments.

        Returns raw booking payloads; the controller validates each item so
        one bad row does not discard the whole list.
        """
        pass

    @abstractmethod
    async def update_booking_status(
        self, booking_id: str, status: BookingStatus
    ) -> StatusUpdateResponse:
        """Request a manual transition (confirm / cancel / complete)."""
        pass

    @abstractmethod
    async def scan_verify(self, request: ScanVerifyRequest) -> VerificationResult:
        """Verify a scanned QR code for check-in or check-out."""
        pass
