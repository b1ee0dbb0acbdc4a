"""
Pydantic schemas for manual booking status updates.
"""

from typing import Optional

from pydantic import BaseModel

from crewbook.models.status import BookingStatus


class StatusUpdateRequest(BaseModel):
    status: BookingStatus


class StatusUpdateResponse(BaseModel):
    success: bool = False
    message: Optional[str] = None
    # Some deployments echo the committed status back; absent means "as requested"
    status: Optional[str] = None
