"""
Tests for scan capture: camera bursts, manual entry and delivery after close.
"""

import asyncio

import pytest

from crewbook.core.errors import ErrorKind, MalformedResponseError
from crewbook.models.status import BookingStatus
from crewbook.services.capture import ScanCapture
from crewbook.services.classifier import GENERIC_BACKEND_MESSAGE


@pytest.mark.asyncio
async def test_camera_burst_reaches_service_once(engine, service):
    """Repeated decodes while the first scan is in flight are dropped."""
    service.gate = asyncio.Event()
    capture = ScanCapture(engine.open_session("B1"))

    first = asyncio.create_task(capture.camera_read("T1"))
    await asyncio.sleep(0)
    dropped = [await capture.camera_read("T1") for _ in range(3)]

    service.gate.set()
    outcome = await first

    assert dropped == [None, None, None]
    assert outcome.ok
    assert service.count("scan_verify") == 1
    assert not capture.session.scanning


@pytest.mark.asyncio
async def test_manual_entry_uses_same_path(engine, controller):
    results = []
    capture = ScanCapture(engine.open_session("B1"), on_result=results.append)

    outcome = await capture.manual_entry(" T1 ")

    assert outcome.ok
    assert results == [outcome]
    assert controller.get("B1").status is BookingStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_malformed_response_becomes_generic_failure(engine, service):
    service.scan_results = [MalformedResponseError("Unexpected token < in JSON")]
    capture = ScanCapture(engine.open_session("B1"))

    outcome = await capture.camera_read("T1")

    assert not outcome.ok
    assert outcome.failure.kind is ErrorKind.BACKEND_REJECTED
    assert outcome.failure.message == GENERIC_BACKEND_MESSAGE
    assert not capture.session.scanning


@pytest.mark.asyncio
async def test_closed_capture_still_commits_but_does_not_deliver(engine, controller, service):
    service.gate = asyncio.Event()
    results = []
    capture = ScanCapture(engine.open_session("B1"), on_result=results.append)

    pending = asyncio.create_task(capture.camera_read("T1"))
    await asyncio.sleep(0)
    capture.close()
    service.gate.set()
    outcome = await pending

    assert outcome.ok
    assert results == []
    assert controller.get("B1").status is BookingStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_failing_listener_is_contained(engine):
    def on_result(outcome):
        raise RuntimeError("screen gone")

    capture = ScanCapture(engine.open_session("B1"), on_result=on_result)

    outcome = await capture.manual_entry("T1")

    assert outcome.ok
    assert not capture.session.scanning
