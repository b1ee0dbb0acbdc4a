"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from crewbook.api.routes import bookings, qr

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings.router)
api_router.include_router(qr.router)
