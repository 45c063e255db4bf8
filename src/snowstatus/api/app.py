"""FastAPI application serving cached resort weather and lift status.

Example:
    >>> from snowstatus.api import create_app
    >>> app = create_app()
    >>> # Run with: uvicorn snowstatus.api.app:app
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from snowstatus.aggregation.summary import build_forecast, feels_like
from snowstatus.api.schemas import (
    BandCurrent,
    CacheStatusEntry,
    CacheStatusResponse,
    ErrorResponse,
    HealthResponse,
    LiftInfo,
    LiftStatusResponse,
    ReadingMeta,
    SnowLineInfo,
    WeatherCurrentResponse,
    WeatherForecastResponse,
)
from snowstatus.config import Settings, load_settings
from snowstatus.errors import AllSourcesExhausted
from snowstatus.services import ServiceRegistry, build_services

logger = logging.getLogger(__name__)

# API version
API_VERSION = "1.0.0"

UNAVAILABLE = {503: {"model": ErrorResponse, "description": "No data available"}}


def create_app(
    services: Optional[ServiceRegistry] = None,
    settings: Optional[Settings] = None,
    start_schedulers: bool = True,
) -> FastAPI:
    """Create FastAPI application.

    Args:
        services: Prebuilt services (default: built from settings on startup)
        settings: Settings used when building services (default: environment)
        start_schedulers: Start the refresh schedulers on startup

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Snow Status API",
        description="Cached weather and lift status for a ski resort",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.services = services

    @app.on_event("startup")
    async def startup_event():
        """Build services if needed and start the schedulers."""
        if app.state.services is None:
            app.state.services = build_services(settings or load_settings())
        if start_schedulers:
            app.state.services.start()
            logger.info("Refresh schedulers started")

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.services is not None:
            app.state.services.close()

    def get_services() -> ServiceRegistry:
        if app.state.services is None:
            raise HTTPException(status_code=503, detail="Services not initialized")
        return app.state.services

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with custom response."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=f"HTTP_{exc.status_code}",
                message=str(exc.detail),
            ).model_dump(),
        )

    @app.exception_handler(AllSourcesExhausted)
    async def exhausted_handler(request: Request, exc: AllSourcesExhausted):
        """No provider answered and nothing is cached."""
        logger.error(f"{request.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content=ErrorResponse(
                error="ALL_SOURCES_EXHAUSTED",
                message=f"No data available for {exc.subject_id}",
                detail="; ".join(f"{a.provider_id}: {a.error}" for a in exc.attempts) or None,
            ).model_dump(),
        )

    @app.get("/", tags=["info"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Snow Status API",
            "version": API_VERSION,
            "docs": "/docs",
        }

    @app.get("/health", response_model=HealthResponse, tags=["info"])
    def health_check():
        """Health check endpoint."""
        registry = get_services()
        has_weather = any(s.has_memory_data for s in registry.weather.statuses())
        has_lifts = any(s.has_memory_data for s in registry.lifts.statuses())
        return HealthResponse(
            status="healthy" if has_weather and has_lifts else "degraded",
            has_weather=has_weather,
            has_lifts=has_lifts,
            version=API_VERSION,
        )

    @app.get(
        "/weather/current",
        response_model=WeatherCurrentResponse,
        responses=UNAVAILABLE,
        tags=["weather"],
    )
    def weather_current():
        """Current conditions per elevation band, with the snow line."""
        registry = get_services()
        reading = registry.weather.get(registry.resort.weather_subject_id)
        summary = reading.summary or {}
        per_band = {b["name"]: b for b in summary.get("bands", [])}

        bands = []
        for band in reading.payload.bands:
            current = band.current
            bands.append(
                BandCurrent(
                    name=band.name,
                    altitude_m=band.altitude_m,
                    time=current.time,
                    temperature_c=current.temperature_c,
                    feels_like_c=feels_like(current),
                    humidity_pct=current.humidity_pct,
                    precipitation_mm=current.precipitation_mm,
                    snowfall_cm=current.snowfall_cm,
                    wind_speed_kmh=current.wind_speed_kmh,
                    wind_direction_deg=current.wind_direction_deg,
                    condition=current.condition,
                    description=current.description,
                    next_24h_snowfall_cm=per_band.get(band.name, {}).get("next_24h_snowfall_cm"),
                )
            )

        snow_line = summary.get("snow_line")
        return WeatherCurrentResponse(
            meta=ReadingMeta.from_reading(reading),
            snow_line=SnowLineInfo(**snow_line) if snow_line else None,
            chance_of_snow=reading.payload.chance_of_snow,
            freeze_level_m=reading.payload.freeze_level_m,
            bands=bands,
        )

    @app.get(
        "/weather/forecast",
        response_model=WeatherForecastResponse,
        responses=UNAVAILABLE,
        tags=["weather"],
    )
    def weather_forecast():
        """Next 24/48/72 h snowfall, 6-hourly buckets and daily values per band."""
        registry = get_services()
        reading = registry.weather.get(registry.resort.weather_subject_id)
        now = registry.weather.clock()
        return WeatherForecastResponse(
            meta=ReadingMeta.from_reading(reading),
            generated_at=now,
            bands=build_forecast(reading.payload, now),
        )

    def lift_response(registry: ServiceRegistry) -> LiftStatusResponse:
        reading = registry.lifts.get(registry.resort.lifts_subject_id)
        payload = reading.payload
        return LiftStatusResponse(
            meta=ReadingMeta.from_reading(reading),
            off_season=payload.off_season,
            total=len(payload.lifts),
            open_count=payload.open_count,
            lifts=[
                LiftInfo(
                    lift_id=lift.lift_id,
                    name=lift.name,
                    status=lift.status.value,
                    hours=lift.hours,
                    priority=lift.priority,
                    scraped_at=lift.scraped_at,
                )
                for lift in payload.lifts
            ],
        )

    @app.get(
        "/lifts/status",
        response_model=LiftStatusResponse,
        responses=UNAVAILABLE,
        tags=["lifts"],
    )
    def lifts_status():
        """Open/closed status of every lift."""
        return lift_response(get_services())

    @app.post("/lifts/refresh", responses=UNAVAILABLE, tags=["lifts"])
    def lifts_refresh():
        """Request a lift refresh; season and minimum-interval guards apply."""
        registry = get_services()
        result = registry.scheduler_for(registry.resort.lifts_subject_id).trigger(reason="api")
        return {
            "refresh": {
                "ran": result.ran,
                "skip_reason": result.skip_reason,
                "success": result.success,
                "failed": result.failed,
                "duration_ms": result.duration_ms,
            },
            "status": lift_response(registry).model_dump(mode="json"),
        }

    @app.get("/cache/status", response_model=CacheStatusResponse, tags=["info"])
    def cache_status():
        """Memory cache status per subject, for monitoring."""
        registry = get_services()
        return CacheStatusResponse(
            subjects=[
                CacheStatusEntry(**status.to_dict())
                for coordinator in registry.coordinators
                for status in coordinator.statuses()
            ],
            schedulers=[scheduler.status() for scheduler in registry.schedulers],
        )

    return app


# Default app instance for uvicorn; services are built on startup
app = create_app()


def run(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Serve the default app with uvicorn, logging at LOG_LEVEL."""
    import uvicorn

    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())
