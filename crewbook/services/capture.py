"""
QR scan capture: the entry point a scanner screen talks to.

Camera decodes and manually typed codes are the same thing once they reach
the core. The session's scanning flag drops the burst of duplicate decodes a
camera produces while the first one is still being verified.
"""

from typing import Any, Callable, Optional

from crewbook.core.errors import ErrorKind
from crewbook.core.logging import get_logger
from crewbook.core.metrics import record_scan_attempt
from crewbook.schemas.outcome import ScanOutcome
from crewbook.services.classifier import GENERIC_BACKEND_MESSAGE, make_failure
from crewbook.services.verification import SCAN_FAILED_TITLE, ScanSession

logger = get_logger(__name__)

ResultCallback = Callable[[ScanOutcome], Any]


class ScanCapture:
    def __init__(self, session: ScanSession, on_result: Optional[ResultCallback] = None):
        self.session = session
        self.on_result = on_result
        self.closed = False

    async def camera_read(self, payload: str) -> Optional[ScanOutcome]:
        return await self._dispatch(payload, source="camera")

    async def manual_entry(self, code: str) -> Optional[ScanOutcome]:
        return await self._dispatch(code, source="manual")

    def close(self) -> None:
        """Stop delivering results. A call already in flight still commits."""
        self.closed = True

    async def _dispatch(self, code: str, source: str) -> Optional[ScanOutcome]:
        if not self.session.try_acquire():
            logger.debug("scan_read_ignored", booking_id=self.session.booking_id, source=source)
            return None

        try:
            outcome = await self.session.scan(code)
        except Exception as e:
            # Malformed responses and anything else the engine did not expect
            logger.error(
                "scan_unexpected_error",
                booking_id=self.session.booking_id,
                source=source,
                error=str(e),
                error_type=type(e).__name__,
            )
            record_scan_attempt("none", ErrorKind.BACKEND_REJECTED.value)
            outcome = ScanOutcome(
                ok=False,
                failure=make_failure(
                    ErrorKind.BACKEND_REJECTED,
                    GENERIC_BACKEND_MESSAGE,
                    title=SCAN_FAILED_TITLE,
                    booking_id=self.session.booking_id,
                    worker_id=self.session.worker_id,
                ),
            )
        finally:
            self.session.release()

        self._deliver(outcome)
        return outcome

    def _deliver(self, outcome: ScanOutcome) -> None:
        if self.closed or self.on_result is None:
            return
        try:
            self.on_result(outcome)
        except Exception as e:
            logger.warning("scan_result_delivery_failed", booking_id=self.session.booking_id,
                           error=str(e))
