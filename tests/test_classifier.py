"""
Tests for the error classifier.
"""

import pytest

from crewbook.core.errors import (
    AlreadyProcessingError,
    ErrorKind,
    InvalidTransitionError,
    MalformedResponseError,
    NetworkUnavailableError,
    RemoteStatusError,
    UnknownStatusError,
)
from crewbook.models.status import BookingStatus
from crewbook.services.classifier import (
    GENERIC_BACKEND_MESSAGE,
    classify_exception,
    is_retryable,
    kind_for,
    make_failure,
)


@pytest.mark.parametrize(
    "exc, kind",
    [
        (AlreadyProcessingError("booking:B1"), ErrorKind.ALREADY_PROCESSING),
        (NetworkUnavailableError("timeout"), ErrorKind.NETWORK_ERROR),
        (RemoteStatusError(401), ErrorKind.PERMISSION_DENIED),
        (RemoteStatusError(403), ErrorKind.PERMISSION_DENIED),
        (RemoteStatusError(502), ErrorKind.NETWORK_ERROR),
        (RemoteStatusError(504), ErrorKind.NETWORK_ERROR),
        (RemoteStatusError(400), ErrorKind.BACKEND_REJECTED),
        (RemoteStatusError(409), ErrorKind.BACKEND_REJECTED),
        (RemoteStatusError(500), ErrorKind.BACKEND_REJECTED),
        (UnknownStatusError("archived"), ErrorKind.UNKNOWN_STATUS),
        (InvalidTransitionError("pending", "completed"), ErrorKind.INVALID_TRANSITION),
        (MalformedResponseError("not json"), ErrorKind.BACKEND_REJECTED),
        (KeyError("data"), ErrorKind.BACKEND_REJECTED),
    ],
)
def test_kind_for(exc, kind):
    assert kind_for(exc) is kind


def test_only_transient_kinds_are_retryable():
    retryable = {kind for kind in ErrorKind if kind.retryable}

    assert retryable == {ErrorKind.ALREADY_PROCESSING, ErrorKind.NETWORK_ERROR}


def test_backend_message_surfaced_verbatim():
    failure = classify_exception(
        RemoteStatusError(409, "This booking expects checkout, not checkin"),
        booking_id="B1",
        action="checkin",
    )

    assert failure.message == "This booking expects checkout, not checkin"
    assert failure.booking_id == "B1"
    assert failure.action == "checkin"
    assert not is_retryable(failure)


def test_unexpected_exception_gets_generic_message():
    failure = classify_exception(MalformedResponseError("Unexpected token < in JSON"))

    assert failure.kind is ErrorKind.BACKEND_REJECTED
    assert failure.message == GENERIC_BACKEND_MESSAGE


def test_network_message_is_fixed():
    failure = classify_exception(NetworkUnavailableError("[Errno 111] Connection refused"))

    assert "Connection refused" not in failure.message
    assert is_retryable(failure)


def test_make_failure_defaults():
    failure = make_failure(ErrorKind.INVALID_STATE_FOR_SCAN, status=BookingStatus.IN_PROGRESS)

    assert "in progress" in failure.message
    assert failure.title == "Scan Not Available"
    assert not failure.retryable

    custom = make_failure(ErrorKind.CODE_MISMATCH, "Wrong worker", title="QR Scan Failed")

    assert custom.message == "Wrong worker"
    assert custom.title == "QR Scan Failed"
