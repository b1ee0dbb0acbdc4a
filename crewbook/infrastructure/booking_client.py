"""
HTTP client for the remote booking service.

Every call goes through `_request`, which maps transport and HTTP failures
onto the package's RemoteCallError types:

  - httpx.TransportError (connect errors, timeouts) -> NetworkUnavailableError
  - HTTP 4xx/5xx                                     -> RemoteStatusError
  - body that is not JSON or not the expected shape  -> MalformedResponseError

The backend's own error text (`message`, then `detail`) is kept verbatim so
it can be shown to the user.
"""

import time
import uuid
from typing import Any, Iterable, Optional

import httpx
from pydantic import ValidationError

from crewbook.core.config import get_settings
from crewbook.core.errors import (
    MalformedResponseError,
    NetworkUnavailableError,
    RemoteStatusError,
)
from crewbook.core.logging import get_logger
from crewbook.core.metrics import remote_call_latency
from crewbook.models.status import BookingStatus
from crewbook.schemas.status import StatusUpdateRequest, StatusUpdateResponse
from crewbook.schemas.verification import ScanVerifyRequest, VerificationResult
from crewbook.services.interfaces.booking_service import BookingService

logger = get_logger(__name__)


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        if isinstance(message, str):
            return message
        if message is not None:
            return str(message)
    return None


def extract_booking_items(payload: Any) -> list[dict[str, Any]]:
    """
    Pull the booking list out of the response shapes the service has used:
    a bare list, {"bookings": [...]}, {"data": [...]}, {"data": {"bookings": [...]}}
    and {"data": {"bookings": {"data": [...]}}}.
    """
    node = payload
    for _ in range(4):
        if isinstance(node, list):
            return [item for item in node if isinstance(item, dict)]
        if not isinstance(node, dict):
            break
        if "bookings" in node:
            node = node["bookings"]
        elif "data" in node:
            node = node["data"]
        else:
            break
    raise MalformedResponseError("Booking list response has an unexpected shape")


class BookingServiceClient(BookingService):
    """Async client for listBookings / updateBookingStatus / scanVerify."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.token = token if token is not None else settings.BOOKING_SERVICE_TOKEN
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url or settings.BOOKING_SERVICE_URL,
            timeout=timeout or settings.REQUEST_TIMEOUT_SECONDS,
        )

    async def __aenter__(self) -> "BookingServiceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"X-Request-ID": str(uuid.uuid4())[:8]}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        payload: Optional[dict] = None,
        params: Optional[list[tuple[str, str]]] = None,
    ) -> Any:
        headers = self._headers()
        start_time = time.perf_counter()
        try:
            response = await self._http.request(
                method, path, json=payload, params=params, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.warning(
                "booking_service_error",
                operation=operation,
                status_code=status_code,
                request_id=headers["X-Request-ID"],
            )
            raise RemoteStatusError(status_code, _error_message(e.response)) from e
        except httpx.TransportError as e:
            logger.warning(
                "booking_service_unreachable",
                operation=operation,
                error=str(e) or e.__class__.__name__,
                request_id=headers["X-Request-ID"],
            )
            raise NetworkUnavailableError(str(e) or e.__class__.__name__) from e
        finally:
            remote_call_latency.labels(operation=operation).observe(
                time.perf_counter() - start_time
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"{operation} returned a non-JSON body") from e

    async def list_bookings(
        self, statuses: Optional[Iterable[BookingStatus]] = None
    ) -> list[dict[str, Any]]:
        params = [("status", BookingStatus.parse(s).value) for s in statuses or ()]
        payload = await self._request("list_bookings", "GET", "/bookings", params=params or None)
        return extract_booking_items(payload)

    async def update_booking_status(
        self, booking_id: str, status: BookingStatus
    ) -> StatusUpdateResponse:
        body = StatusUpdateRequest(status=status).model_dump(mode="json")
        payload = await self._request(
            "update_booking_status", "PATCH", f"/bookings/{booking_id}/status", payload=body
        )
        try:
            return StatusUpdateResponse.model_validate(payload)
        except ValidationError as e:
            raise MalformedResponseError("Status update response has an unexpected shape") from e

    async def scan_verify(self, request: ScanVerifyRequest) -> VerificationResult:
        payload = await self._request(
            "scan_verify", "POST", "/qr/scan", payload=request.model_dump(mode="json")
        )
        # Some deployments wrap the result: {"data": {...}}
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = {**payload["data"], **{k: v for k, v in payload.items() if k != "data"}}
        try:
            return VerificationResult.model_validate(payload)
        except ValidationError as e:
            raise MalformedResponseError("Scan verification response has an unexpected shape") from e
