"""External data providers and the ordered fallback chain."""

from snowstatus.providers.base import HTTPProvider, Provider, RequestConfig
from snowstatus.providers.chain import Attempt, ChainResult, ProviderChain
from snowstatus.providers.lifts import LiftIconProvider, LiftTableProvider
from snowstatus.providers.openmeteo import OpenMeteoProvider
from snowstatus.providers.wwo import WorldWeatherOnlineProvider

__all__ = [
    "Attempt",
    "ChainResult",
    "HTTPProvider",
    "LiftIconProvider",
    "LiftTableProvider",
    "OpenMeteoProvider",
    "Provider",
    "ProviderChain",
    "RequestConfig",
    "WorldWeatherOnlineProvider",
]
