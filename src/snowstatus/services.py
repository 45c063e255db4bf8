"""Service wiring for one resort.

Builds the snapshot store, the two provider chains, the two cache
coordinators and their refresh schedulers from Settings. Callers hold the
returned ServiceRegistry and pass it (or its coordinators) around; there
are no module-level singletons.
"""

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Optional

import requests

from snowstatus.aggregation.derived import SnowLinePolicy
from snowstatus.aggregation.summary import summarize
from snowstatus.cache.coordinator import CacheCoordinator
from snowstatus.cache.database import SnapshotDatabase
from snowstatus.cache.models import NOZAWA_ONSEN, Resort, lifts_subject, weather_subject
from snowstatus.cache.refresh import RefreshScheduler, SeasonWindow
from snowstatus.config import Settings
from snowstatus.errors import PersistenceReadFailed
from snowstatus.normalize import normalize
from snowstatus.providers.base import RequestConfig
from snowstatus.providers.chain import ProviderChain
from snowstatus.providers.lifts import LiftIconProvider, LiftTableProvider
from snowstatus.providers.openmeteo import OpenMeteoProvider
from snowstatus.providers.wwo import WorldWeatherOnlineProvider

logger = logging.getLogger(__name__)


@dataclass
class ServiceRegistry:
    """Everything a process needs to serve one resort."""

    resort: Resort
    store: Optional[SnapshotDatabase]
    weather: CacheCoordinator
    lifts: CacheCoordinator
    schedulers: list[RefreshScheduler] = field(default_factory=list)
    session: Optional[requests.Session] = None

    @property
    def coordinators(self) -> list[CacheCoordinator]:
        return [self.weather, self.lifts]

    @property
    def subject_ids(self) -> list[str]:
        return [sid for coordinator in self.coordinators for sid in coordinator.subjects]

    def coordinator_for(self, subject_id: str) -> CacheCoordinator:
        for coordinator in self.coordinators:
            if subject_id in coordinator.subjects:
                return coordinator
        raise KeyError(f"Unknown subject: {subject_id}")

    def scheduler_for(self, subject_id: str) -> RefreshScheduler:
        for scheduler in self.schedulers:
            if subject_id in scheduler.subject_ids:
                return scheduler
        raise KeyError(f"No scheduler for subject: {subject_id}")

    def start(self) -> None:
        for scheduler in self.schedulers:
            scheduler.start()

    def status(self) -> dict:
        """Store statistics plus per-subject snapshot and memory status."""
        stats = {
            "db_path": str(self.store.db_path) if self.store is not None else None,
            "snapshot_count": 0, "fetch_count": 0, "failed_fetch_count": 0,
            "store_error": None,
        }
        if self.store is not None:
            try:
                stats.update(self.store.get_stats())
            except PersistenceReadFailed as e:
                logger.warning(f"Snapshot store statistics unavailable: {e}")
                stats["store_error"] = str(e)
        subjects = []
        for coordinator in self.coordinators:
            for subject_id in coordinator.subjects:
                stored = coordinator.stored_reading(subject_id)
                now = coordinator.clock()
                subjects.append({
                    "subject_id": subject_id,
                    "provider_id": stored.provider_id if stored else None,
                    "fetched_at": stored.fetched_at.isoformat() if stored else None,
                    "is_fresh": stored.is_fresh(now) if stored else False,
                    "memory": coordinator.cache_status(subject_id).to_dict(),
                })
        return {**stats, "subjects": subjects, "schedulers": [s.status() for s in self.schedulers]}

    def close(self) -> None:
        for scheduler in self.schedulers:
            scheduler.stop()
        for coordinator in self.coordinators:
            coordinator.chain.close()
        if self.session is not None:
            self.session.close()
        if self.store is not None:
            self.store.close()


def build_services(
    settings: Settings,
    resort: Resort = NOZAWA_ONSEN,
    store: Optional[SnapshotDatabase] = None,
    session: Optional[requests.Session] = None,
) -> ServiceRegistry:
    """Wire providers, chains, coordinators and schedulers for a resort.

    Args:
        settings: Loaded settings
        resort: Resort to serve
        store: Snapshot store (default: DuckDB file at settings.snapshot_db_path)
        session: Shared HTTP session for all providers

    Returns:
        ServiceRegistry; call ``start()`` to run the schedulers
    """
    session = session or requests.Session()
    request_config = RequestConfig(timeout=settings.provider_timeout_seconds)
    if store is None:
        store = SnapshotDatabase(settings.snapshot_db_path)

    weather_chain = ProviderChain(
        [
            WorldWeatherOnlineProvider(
                settings.wwo_api_key,
                enabled=settings.enable_wwo,
                session=session,
                request_config=request_config,
            ),
            OpenMeteoProvider(
                enabled=settings.enable_open_meteo,
                session=session,
                request_config=request_config,
            ),
        ],
        normalize,
        timeout_seconds=settings.provider_timeout_seconds,
        name="weather",
    )
    lift_chain = ProviderChain(
        [
            LiftTableProvider(settings.lift_status_url, session=session, request_config=request_config),
            LiftIconProvider(
                settings.lift_status_url,
                enabled=settings.enable_lift_icon_fallback,
                session=session,
                request_config=request_config,
            ),
        ],
        normalize,
        timeout_seconds=settings.provider_timeout_seconds,
        name="lifts",
    )

    policy = SnowLinePolicy(cold_c=settings.snow_line_cold_c, warm_c=settings.snow_line_warm_c)
    summarizer = partial(summarize, policy=policy)

    weather = CacheCoordinator(
        [weather_subject(resort)],
        weather_chain,
        store=store,
        summarizer=summarizer,
        ttl_minutes=settings.cache_ttl_minutes,
        persist_enabled=settings.enable_persistent_write,
    )
    lifts = CacheCoordinator(
        [lifts_subject(resort)],
        lift_chain,
        store=store,
        summarizer=summarizer,
        ttl_minutes=settings.cache_ttl_minutes,
        persist_enabled=settings.enable_persistent_write,
    )

    season = SeasonWindow(settings.season_start, settings.season_end, resort.tz)
    schedulers = [
        RefreshScheduler(
            coordinator,
            season=season,
            min_interval_minutes=settings.min_refresh_interval_minutes,
            tick_seconds=settings.refresh_tick_seconds,
            fetch_log_keep_days=settings.fetch_log_keep_days,
            name=f"{kind}-refresh",
        )
        for kind, coordinator in (("weather", weather), ("lifts", lifts))
    ]

    logger.info(
        f"Services ready for {resort.name}: TTL {settings.cache_ttl_minutes} min, "
        f"season {season}, store {store.db_path}"
    )
    return ServiceRegistry(
        resort=resort,
        store=store,
        weather=weather,
        lifts=lifts,
        schedulers=schedulers,
        session=session,
    )
