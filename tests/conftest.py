"""
Pytest fixtures for the booking core and the reference booking service.

The core is tested against FakeBookingService, an in-process double that
records every remote call. The reference service is exercised over
ASGITransport, with the real httpx client pointed at it for end-to-end runs.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from crewbook.infrastructure.booking_client import BookingServiceClient
from crewbook.main import create_app
from crewbook.models.status import ScanAction
from crewbook.schemas.status import StatusUpdateResponse
from crewbook.schemas.verification import ScanVerifyRequest, VerificationResult
from crewbook.services.booking_store import BookingStore
from crewbook.services.interfaces.booking_service import BookingService
from crewbook.services.interfaces.local_guard import LocalInFlightGuard
from crewbook.services.ledger import AttendanceLedger
from crewbook.services.lifecycle import BookingLifecycleController
from crewbook.services.verification import VerificationEngine

CHECKIN_AT = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
CHECKOUT_AT = CHECKIN_AT + timedelta(hours=8)


def seed_bookings() -> list[dict]:
    """B1 confirmed (W1/T1), B2 pending, B3 confirmed (W3/T3)."""
    return [
        {
            "id": "B1",
            "work_description": "Kitchen tiling",
            "work_location": "12 Park Street",
            "duration_value": 1,
            "duration_type": "day",
            "total_price": 1200,
            "status": "confirmed",
            "booking_date": "2026-03-02T09:00:00+00:00",
            "booking_workers": [
                {
                    "id": "A1",
                    "worker": {"id": "W1", "name": "Ravi Kumar"},
                    "category": {"id": 3, "name": "Tiler"},
                    "assigned_hours": 8,
                    "worker_price": 1200,
                    "qr_token": "T1",
                }
            ],
        },
        {
            "id": "B2",
            "work_description": "Garden clearing",
            "duration_value": 4,
            "duration_type": "hours",
            "total_price": 600,
            "status": "pending",
            "booking_workers": [
                {"id": "A2", "worker": {"id": "W2", "name": "Anil"}, "qr_token": "T2"}
            ],
        },
        {
            "id": "B3",
            "work_description": "Wall painting",
            "duration_value": 2,
            "duration_type": "day",
            "total_price": 2400,
            "status": "confirmed",
            "booking_workers": [
                {"id": "A3", "worker": {"id": "W3", "name": "Meena"}, "qr_token": "T3"}
            ],
        },
    ]


class FakeBookingService(BookingService):
    """
    Booking service double.

    - `calls` records (operation, *args) for every remote call
    - `scan_results` / `status_results` are queues; an Exception entry is raised
    - `gate`, when set, holds every call until the event is set
    """

    def __init__(self, bookings: Optional[list[dict]] = None):
        self.bookings = bookings if bookings is not None else seed_bookings()
        self.calls: list[tuple] = []
        self.scan_results: list = []
        self.status_results: list = []
        self.list_results: list = []
        self.gate: Optional[asyncio.Event] = None

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    async def _next(self, queue: list, default):
        if self.gate is not None:
            await self.gate.wait()
        outcome = queue.pop(0) if queue else default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def list_bookings(self, statuses=None):
        self.calls.append(("list_bookings", statuses))
        return await self._next(self.list_results, self.bookings)

    async def update_booking_status(self, booking_id, status):
        self.calls.append(("update_booking_status", booking_id, status))
        return await self._next(
            self.status_results, StatusUpdateResponse(success=True, message="ok")
        )

    async def scan_verify(self, request: ScanVerifyRequest) -> VerificationResult:
        self.calls.append(("scan_verify", request))
        if request.action is ScanAction.CHECKIN:
            default = VerificationResult(
                success=True,
                worker_name="Ravi Kumar",
                checkin_time=CHECKIN_AT,
                booking_status="in_progress",
            )
        else:
            default = VerificationResult(
                success=True,
                worker_name="Ravi Kumar",
                checkin_time=CHECKIN_AT,
                checkout_time=CHECKOUT_AT,
                total_hours=8.0,
                regular_hours=8.0,
                overtime_hours=0.0,
                booking_status="completed",
            )
        return await self._next(self.scan_results, default)


class FakeClock:
    def __init__(self, start: datetime = CHECKIN_AT):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def service() -> FakeBookingService:
    return FakeBookingService()


@pytest.fixture
def guard() -> LocalInFlightGuard:
    return LocalInFlightGuard()


@pytest.fixture
def controller(service: FakeBookingService, guard: LocalInFlightGuard) -> BookingLifecycleController:
    """Controller hydrated with the seed bookings."""
    controller = BookingLifecycleController(service, guard)
    controller.hydrate(seed_bookings())
    return controller


@pytest.fixture
def ledger() -> AttendanceLedger:
    return AttendanceLedger()


@pytest.fixture
def engine(controller, ledger, guard) -> VerificationEngine:
    return VerificationEngine(controller, ledger, guard)


# -------- reference service --------

CUSTOMER_ID = "C1"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> BookingStore:
    """Store seeded with the same bookings, owned by CUSTOMER_ID."""
    store = BookingStore(clock=clock, standard_shift_hours=8.0)
    for booking in seed_bookings():
        store.add(booking, CUSTOMER_ID)
    store.add(
        {
            "id": "B9",
            "status": "pending",
            "booking_workers": [{"id": "A9", "qr_token": "T9"}],
        },
        "C2",
    )
    return store


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {CUSTOMER_ID}"}


@pytest_asyncio.fixture
async def client(store: BookingStore) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to a reference service app backed by `store`."""
    transport = ASGITransport(app=create_app(store))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def remote(store: BookingStore) -> AsyncGenerator[BookingServiceClient, None]:
    """The real booking service client, talking to the reference service in-process."""
    transport = ASGITransport(app=create_app(store))
    http_client = AsyncClient(transport=transport, base_url="http://test/api/v1")
    async with BookingServiceClient(token=CUSTOMER_ID, http_client=http_client) as booking_client:
        yield booking_client
    await http_client.aclose()
