"""
Pydantic schemas for the scan verification call.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from crewbook.models.status import ScanAction


class ScanVerifyRequest(BaseModel):
    qr_code: str = Field(..., min_length=1)
    action: ScanAction
    booking_id: str

    model_config = {"coerce_numbers_to_str": True}


class VerificationResult(BaseModel):
    """
    Projection of the scanVerify response.

    Every field except `success` may be missing; hours arrive as numbers or
    numeric strings ("8.0"). Placeholders such as "" or "N/A" read as absent.
    """

    success: bool = False
    worker_name: Optional[str] = None
    checkin_time: Optional[datetime] = None
    checkout_time: Optional[datetime] = None
    total_hours: Optional[float] = None
    regular_hours: Optional[float] = None
    overtime_hours: Optional[float] = None
    booking_status: Optional[str] = None
    message: Optional[str] = None

    @field_validator(
        "checkin_time", "checkout_time", "total_hours", "regular_hours", "overtime_hours",
        mode="before",
    )
    @classmethod
    def _blank_as_none(cls, value):
        if isinstance(value, str) and value.strip().upper() in ("", "N/A", "NULL"):
            return None
        return value


class ScanEvent(BaseModel):
    """A single scan, alive from capture until its response is applied."""

    raw_payload: str
    action: ScanAction
    booking_id: str
    worker_id: Optional[str] = None
    assignment_id: Optional[str] = None
    scanned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_request(self) -> ScanVerifyRequest:
        return ScanVerifyRequest(
            qr_code=self.raw_payload,
            action=self.action,
            booking_id=self.booking_id,
        )
