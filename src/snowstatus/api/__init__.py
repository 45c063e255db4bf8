"""HTTP API for snowstatus.

This module provides:

- create_app: Factory function to create FastAPI application
- Response schemas for weather, lift status and cache status

Note: FastAPI-dependent exports (create_app) are lazy-loaded to allow
importing schemas without FastAPI installed.
"""

# Schemas can be imported directly (only depend on pydantic)
from snowstatus.api.schemas import (
    CacheStatusResponse,
    ErrorResponse,
    HealthResponse,
    LiftStatusResponse,
    ReadingMeta,
    WeatherCurrentResponse,
    WeatherForecastResponse,
)


# Lazy imports for FastAPI-dependent components
def __getattr__(name):
    """Lazy load FastAPI-dependent components."""
    if name == "create_app":
        from snowstatus.api.app import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "create_app",
    "CacheStatusResponse",
    "ErrorResponse",
    "HealthResponse",
    "LiftStatusResponse",
    "ReadingMeta",
    "WeatherCurrentResponse",
    "WeatherForecastResponse",
]
