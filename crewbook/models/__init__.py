from crewbook.models.status import BookingStatus, ScanAction, DurationUnit
from crewbook.models.booking import Booking, BookingWorkerAssignment, Worker, Category

__all__ = [
    "BookingStatus", "ScanAction", "DurationUnit",
    "Booking", "BookingWorkerAssignment", "Worker", "Category",
]
