"""World Weather Online ski weather provider.

Ski-specific forecast (bottom/mid/top levels, chance of snow, freeze
level). Requires an API key; without one the provider reports itself as
not configured and the chain runs on its secondary provider only.
"""

import logging
from typing import Any, Optional

import requests

from snowstatus.cache.models import Subject
from snowstatus.errors import MalformedPayload, ProviderNotConfigured, ProviderUnavailable
from snowstatus.providers.base import HTTPProvider, RequestConfig

logger = logging.getLogger(__name__)

WWO_SKI_URL = "https://api.worldweatheronline.com/premium/v1/ski.ashx"


class WorldWeatherOnlineProvider(HTTPProvider):
    """Fetches the WWO ski forecast for a resort.

    The raw payload is the WWO JSON as returned. WWO emits one ``weather``
    record per 3-hour slot per day; merging them is the normalizer's job.
    """

    provider_id = "wwo"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = WWO_SKI_URL,
        num_of_days: int = 7,
        enabled: bool = True,
        session: Optional[requests.Session] = None,
        request_config: Optional[RequestConfig] = None,
    ) -> None:
        super().__init__(session=session, request_config=request_config)
        self.api_key = api_key
        self.base_url = base_url
        self.num_of_days = num_of_days
        self.enabled = enabled

    def is_configured(self) -> bool:
        return self.enabled and bool(self.api_key)

    def fetch(self, subject: Subject) -> dict[str, Any]:
        if not self.is_configured():
            raise ProviderNotConfigured("WWO_API_KEY not configured", self.provider_id)

        resort = subject.resort
        data = self._get_json(
            self.base_url,
            params={
                "key": self.api_key,
                "q": f"{resort.lat},{resort.lon}",
                "format": "json",
                "num_of_days": self.num_of_days,
            },
        )

        body = data.get("data") if isinstance(data, dict) else None
        if not isinstance(body, dict):
            raise MalformedPayload("WWO response has no 'data' object", self.provider_id)

        if body.get("error"):
            errors = body["error"]
            message = errors[0].get("msg") if errors and isinstance(errors[0], dict) else None
            raise ProviderUnavailable(f"WWO API error: {message or 'unknown'}", self.provider_id)

        return data
