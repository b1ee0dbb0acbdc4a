"""
Booking list and manual status endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from crewbook.api.deps import get_current_customer_id, get_store
from crewbook.models.status import BookingStatus
from crewbook.schemas.status import StatusUpdateRequest, StatusUpdateResponse
from crewbook.services.booking_store import BookingStore
from crewbook.services.summary import STATUS_SUCCESS_MESSAGES

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("")
async def list_bookings(
    status: Optional[list[BookingStatus]] = Query(None),
    customer_id: str = Depends(get_current_customer_id),
    store: BookingStore = Depends(get_store),
):
    """Bookings owned by the caller, optionally filtered by one or more statuses."""
    bookings = store.list_for(customer_id, status)
    return {
        "success": True,
        "data": [booking.model_dump(mode="json") for booking in bookings],
    }


@router.patch("/{booking_id}/status", response_model=StatusUpdateResponse)
async def update_booking_status(
    booking_id: str,
    body: StatusUpdateRequest,
    customer_id: str = Depends(get_current_customer_id),
    store: BookingStore = Depends(get_store),
):
    """
    Confirm, cancel or complete a booking.
    Returns 409 when the current status does not allow the change.
    """
    booking = store.update_status(customer_id, booking_id, body.status)
    return StatusUpdateResponse(
        success=True,
        message=STATUS_SUCCESS_MESSAGES.get(booking.status),
        status=booking.status.value,
    )
