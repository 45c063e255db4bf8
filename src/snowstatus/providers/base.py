"""Base classes for external data providers.

A provider turns a Subject into its provider-native raw payload (a dict)
or raises a typed ProviderError. Providers never retry; retry timing
belongs to the refresh scheduler.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import requests
from requests import Response

from snowstatus.cache.models import Subject
from snowstatus.errors import (
    MalformedPayload,
    ProviderHTTPError,
    ProviderTimeout,
    ProviderUnavailable,
)

logger = logging.getLogger(__name__)

USER_AGENT = "snowstatus/1.0"


@dataclass
class RequestConfig:
    """HTTP settings shared by all requests of one provider.

    Attributes:
        timeout: Per-request timeout in seconds
        user_agent: User-Agent header sent upstream
    """

    timeout: float = 10.0
    user_agent: str = USER_AGENT


class Provider(ABC):
    """An external source of raw payloads for one kind of subject."""

    provider_id: str = "provider"

    def is_configured(self) -> bool:
        """Whether the provider has its credentials and is enabled."""
        return True

    @abstractmethod
    def fetch(self, subject: Subject) -> dict[str, Any]:
        """Fetch the provider-native payload for a subject.

        Raises:
            ProviderError: On any failure (timeout, HTTP status, bad body, config)
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.provider_id!r})"


class HTTPProvider(Provider):
    """Provider backed by HTTP requests with a bounded timeout."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        request_config: Optional[RequestConfig] = None,
    ) -> None:
        self.request_config = request_config or RequestConfig()
        self.session = session or requests.Session()

    def _request(self, url: str, **kwargs) -> Response:
        try:
            response = self.session.get(
                url,
                timeout=self.request_config.timeout,
                headers={"User-Agent": self.request_config.user_agent},
                **kwargs,
            )
        except requests.Timeout as e:
            raise ProviderTimeout(
                f"{self.provider_id} timed out after {self.request_config.timeout}s",
                self.provider_id,
            ) from e
        except requests.RequestException as e:
            raise ProviderUnavailable(
                f"{self.provider_id} request failed: {e}", self.provider_id
            ) from e

        if response.status_code >= 400:
            logger.debug(f"{self.provider_id} returned {response.status_code}: {response.text[:200]}")
            raise ProviderHTTPError(
                f"{self.provider_id} returned HTTP {response.status_code}",
                response.status_code,
                self.provider_id,
            )
        return response

    def _get_json(self, url: str, **kwargs) -> Any:
        response = self._request(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise MalformedPayload(
                f"{self.provider_id} returned a non-JSON body", self.provider_id
            ) from e

    def _get_text(self, url: str, **kwargs) -> str:
        return self._request(url, **kwargs).text
