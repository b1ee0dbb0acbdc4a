"""
Structured logging configuration using structlog.
Outputs JSON in production, pretty-printed in development.

Scans and manual status updates run inside `booking_context`, so every
line they log (including the booking service client's) carries the
booking id, and the worker and action or event where known.
"""

import logging
import sys
from contextlib import AbstractContextManager
from typing import Optional

import structlog

from crewbook.core.config import get_settings


def setup_logging() -> None:
    settings = get_settings()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.ENVIRONMENT == "production":
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=settings.DEBUG)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ]
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Request lines come from RequestLoggingMiddleware; remote calls from BookingServiceClient
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def booking_context(
    booking_id: str, worker_id: Optional[str] = None, **extra
) -> AbstractContextManager:
    """
    Bind booking correlation fields for the duration of a `with` block.

    None values are left out. Fields bound by an enclosing block are
    restored on exit.
    """
    fields = {"booking_id": str(booking_id), "worker_id": worker_id, **extra}
    return structlog.contextvars.bound_contextvars(
        **{key: value for key, value in fields.items() if value is not None}
    )
