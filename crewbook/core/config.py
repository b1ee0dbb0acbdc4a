"""
Configuration for the booking/attendance core using pydantic-settings.
All config is loaded from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Crewbook Booking Service"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Remote booking service
    BOOKING_SERVICE_URL: str = "http://localhost:8000/api/v1"
    BOOKING_SERVICE_TOKEN: str = ""
    REQUEST_TIMEOUT_SECONDS: float = 10.0

    # Concurrency guard: "local" (in-process) or "redis" (shared)
    GUARD_BACKEND: str = "local"
    GUARD_KEY_TTL_SECONDS: int = 120  # backstop against lost releases
    REDIS_URL: str = "redis://localhost:6379/0"

    # Attendance: regular hours cap when an assignment carries no assigned_hours
    STANDARD_SHIFT_HOURS: float = 8.0

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
    }


@lru_cache()
def get_settings() -> Settings:
    return Settings()
