"""
Booking model with its worker assignments.

Key design decisions:
- Bookings are hydrated from the booking service; the client never creates them
- Status is a closed enum; an unknown backend string raises UnknownStatusError,
  which is not a ValueError and so propagates out of validation unchanged
- Each assignment carries its own QR token and attendance timestamps
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from crewbook.models.status import BookingStatus, DurationUnit


class Worker(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    mobile: Optional[str] = None
    profile_image: Optional[str] = None
    rating: Optional[float] = None

    model_config = {"coerce_numbers_to_str": True}


class Category(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None

    model_config = {"coerce_numbers_to_str": True}


class BookingWorkerAssignment(BaseModel):
    id: str
    worker: Worker = Field(default_factory=Worker)
    category: Optional[Category] = None
    assigned_hours: Optional[float] = Field(None, ge=0)
    worker_price: float = Field(0, ge=0)
    qr_token: Optional[str] = None
    checkin_time: Optional[datetime] = None
    checkout_time: Optional[datetime] = None

    model_config = {"coerce_numbers_to_str": True}

    @field_validator("worker", mode="before")
    @classmethod
    def _default_worker(cls, value):
        return {} if value is None else value

    @model_validator(mode="after")
    def _checkout_after_checkin(self) -> "BookingWorkerAssignment":
        if self.checkout_time is not None:
            if self.checkin_time is None:
                raise ValueError("assignment checked out without a check-in")
            if self.checkout_time <= self.checkin_time:
                raise ValueError("checkout_time must be later than checkin_time")
        return self

    @property
    def worker_id(self) -> Optional[str]:
        return self.worker.id

    @property
    def is_checked_in(self) -> bool:
        return self.checkin_time is not None and self.checkout_time is None

    def matches_code(self, code: str) -> bool:
        return self.qr_token is not None and self.qr_token == code


class Booking(BaseModel):
    id: str
    work_description: Optional[str] = None
    work_location: Optional[str] = None
    preferred_start_time: Optional[datetime] = None
    duration_value: float = Field(1, gt=0)
    duration_type: Optional[DurationUnit] = None
    total_price: float = Field(0, ge=0)
    special_instructions: Optional[str] = None
    status: BookingStatus
    booking_date: Optional[datetime] = None
    booking_workers: list[BookingWorkerAssignment] = Field(..., min_length=1)

    model_config = {"coerce_numbers_to_str": True}

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value):
        return BookingStatus.parse(value)

    @field_validator("duration_type", mode="before")
    @classmethod
    def _parse_duration_type(cls, value):
        return DurationUnit.parse(value)

    def assignment(self, assignment_id: str) -> Optional[BookingWorkerAssignment]:
        for item in self.booking_workers:
            if item.id == assignment_id:
                return item
        return None

    def find_assignment(
        self, code: str, worker_id: Optional[str] = None
    ) -> Optional[BookingWorkerAssignment]:
        """Assignment whose QR token equals `code` (and whose worker is `worker_id`, if given)."""
        for item in self.booking_workers:
            if not item.matches_code(code):
                continue
            if worker_id is not None and item.worker_id != worker_id:
                continue
            return item
        return None

    @property
    def has_known_tokens(self) -> bool:
        return any(item.qr_token for item in self.booking_workers)

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status.value}, workers={len(self.booking_workers)})>"
