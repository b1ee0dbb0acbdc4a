"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .booking_client import BookingServiceClient, extract_booking_items
from .redis_client import close_redis, get_redis

__all__ = ['BookingServiceClient', 'extract_booking_items', 'get_redis', 'close_redis']
