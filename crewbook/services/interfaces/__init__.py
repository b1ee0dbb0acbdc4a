"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .booking_service import BookingService
from .guard import GuardKey, InFlightGuard
from .local_guard import LocalInFlightGuard

__all__ = ['BookingService', 'GuardKey', 'InFlightGuard', 'LocalInFlightGuard']
