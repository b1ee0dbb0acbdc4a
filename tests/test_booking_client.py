"""
Tests for the httpx booking service client, alone and driving the full core
against the reference service.
"""

import httpx
import pytest
from httpx import ASGITransport

from crewbook.core.errors import (
    ErrorKind,
    MalformedResponseError,
    NetworkUnavailableError,
    RemoteStatusError,
)
from crewbook.infrastructure.booking_client import BookingServiceClient, extract_booking_items
from crewbook.main import create_app
from crewbook.models.status import BookingStatus, ScanAction
from crewbook.schemas.verification import ScanVerifyRequest
from crewbook.services.interfaces.local_guard import LocalInFlightGuard
from crewbook.services.strategy_factory import create_booking_core


def mock_client(handler) -> BookingServiceClient:
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://test/api/v1"
    )
    return BookingServiceClient(token="C1", http_client=http_client)


@pytest.mark.parametrize(
    "payload",
    [
        [{"id": 1}],
        {"data": [{"id": 1}]},
        {"bookings": [{"id": 1}]},
        {"data": {"bookings": [{"id": 1}]}},
        {"success": True, "data": {"bookings": {"data": [{"id": 1}]}}},
    ],
)
def test_extract_booking_items(payload):
    assert extract_booking_items(payload) == [{"id": 1}]


def test_extract_booking_items_rejects_unknown_shape():
    with pytest.raises(MalformedResponseError):
        extract_booking_items({"results": []})


@pytest.mark.asyncio
async def test_list_bookings(remote):
    items = await remote.list_bookings()
    pending = await remote.list_bookings([BookingStatus.PENDING])

    assert [item["id"] for item in items] == ["B1", "B2", "B3"]
    assert [item["id"] for item in pending] == ["B2"]


@pytest.mark.asyncio
async def test_update_status_conflict_keeps_backend_message(remote):
    with pytest.raises(RemoteStatusError) as exc_info:
        await remote.update_booking_status("B2", BookingStatus.COMPLETED)

    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "Cannot change a pending booking to completed"


@pytest.mark.asyncio
async def test_scan_verify_parses_string_hours(remote, clock):
    request = ScanVerifyRequest(qr_code="T1", action=ScanAction.CHECKIN, booking_id="B1")
    await remote.scan_verify(request)
    clock.advance(hours=8)

    result = await remote.scan_verify(request.model_copy(update={"action": ScanAction.CHECKOUT}))

    assert result.success
    assert result.total_hours == 8.0
    assert result.overtime_hours == 0.0
    assert result.booking_status == "completed"


@pytest.mark.asyncio
async def test_sends_bearer_token_and_request_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.headers)
        return httpx.Response(200, json=[])

    async with mock_client(handler) as client:
        await client.list_bookings()

    assert seen["authorization"] == "Bearer C1"
    assert seen["x-request-id"]


@pytest.mark.asyncio
async def test_transport_error_is_network_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with mock_client(handler) as client:
        with pytest.raises(NetworkUnavailableError):
            await client.list_bookings()


@pytest.mark.asyncio
async def test_non_json_body_is_malformed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    async with mock_client(handler) as client:
        with pytest.raises(MalformedResponseError):
            await client.list_bookings()


@pytest.mark.asyncio
async def test_detail_used_when_message_missing():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"detail": "action is required"})

    async with mock_client(handler) as client:
        with pytest.raises(RemoteStatusError) as exc_info:
            await client.update_booking_status("B1", BookingStatus.CANCELLED)

    assert exc_info.value.message == "action is required"


@pytest.mark.asyncio
async def test_wrapped_scan_result():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"success": True, "data": {"worker_name": "Ravi", "booking_status": "in_progress"}},
        )

    async with mock_client(handler) as client:
        result = await client.scan_verify(
            ScanVerifyRequest(qr_code="T1", action=ScanAction.CHECKIN, booking_id="B1")
        )

    assert result.success
    assert result.worker_name == "Ravi"


@pytest.mark.asyncio
async def test_full_booking_flow_against_reference_service(remote, clock):
    """Refresh, confirm, check in and check out through the real client."""
    core = create_booking_core(service=remote, guard=LocalInFlightGuard())

    refreshed = await core.controller.refresh()
    assert refreshed.ok
    assert len(core.controller.bookings()) == 3

    confirmed = await core.controller.confirm("B2")
    assert confirmed.ok
    assert core.controller.get("B2").status is BookingStatus.CONFIRMED

    checkin = await core.engine.verify("B1", "T1")
    assert checkin.ok
    assert core.controller.get("B1").status is BookingStatus.IN_PROGRESS

    clock.advance(hours=8)
    checkout = await core.engine.verify("B1", "T1")
    assert checkout.ok
    assert checkout.attendance.total_hours == 8.0
    assert core.controller.get("B1").status is BookingStatus.COMPLETED

    wrong = await core.engine.verify("B3", "T1")
    assert wrong.failure.kind is ErrorKind.CODE_MISMATCH


@pytest.mark.asyncio
async def test_unauthenticated_client_gets_permission_denied(store):
    http_client = httpx.AsyncClient(
        transport=ASGITransport(app=create_app(store)), base_url="http://test/api/v1"
    )
    core = create_booking_core(
        service=BookingServiceClient(token="", http_client=http_client),
        guard=LocalInFlightGuard(),
    )

    outcome = await core.controller.refresh()
    await http_client.aclose()

    assert outcome.failure.kind is ErrorKind.PERMISSION_DENIED
    assert outcome.failure.message == "Not authenticated"
