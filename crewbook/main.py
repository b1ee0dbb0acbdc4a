"""
Crewbook reference booking service - application entry point.

An in-memory implementation of the booking service the client core talks to:
- Booking list with status filters
- Manual status updates enforcing the booking state machine
- QR check-in / check-out with hours calculation
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crewbook.core.config import get_settings
from crewbook.core.logging import setup_logging, get_logger
from crewbook.core.metrics import metrics_endpoint
from crewbook.api.router import api_router
from crewbook.api.middleware import RequestLoggingMiddleware
from crewbook.services.booking_store import BookingStore

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    yield

    logger.info("application_shutdown")


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Same envelope as successful responses; the client reads `message`
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def create_app(store: Optional[BookingStore] = None) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Reference booking service with QR check-in and check-out",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.store = store or BookingStore()

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    app.include_router(api_router)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for Docker and load balancers."""
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

    @app.get("/metrics", tags=["Health"])
    def metrics():
        return metrics_endpoint()

    return app


app = create_app()
