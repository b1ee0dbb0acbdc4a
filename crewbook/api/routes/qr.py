"""
QR scan verification endpoint.
"""

from fastapi import APIRouter, Depends

from crewbook.api.deps import get_current_customer_id, get_store
from crewbook.schemas.verification import ScanVerifyRequest
from crewbook.services.booking_store import BookingStore

router = APIRouter(prefix="/qr", tags=["QR"])


@router.post("/scan")
async def scan_verify(
    body: ScanVerifyRequest,
    customer_id: str = Depends(get_current_customer_id),
    store: BookingStore = Depends(get_store),
):
    """
    Check a worker in or out with the QR token from their assignment.

    The action must match the booking status: check-in for confirmed
    bookings, check-out for in-progress ones.
    """
    return store.scan(customer_id, body)
