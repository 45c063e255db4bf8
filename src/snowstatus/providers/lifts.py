"""Lift status providers.

Both providers read the resort's official slopes & lifts page. The page
carries lift status twice: in a status table and as per-lift icons. The
table is the primary source; the icons are the secondary source used when
the table is missing or unreadable. Parsing happens in
``snowstatus.normalize.lifts``.
"""

import logging
from typing import Any, Optional

import requests

from snowstatus.cache.models import Subject
from snowstatus.errors import MalformedPayload
from snowstatus.providers.base import HTTPProvider, RequestConfig

logger = logging.getLogger(__name__)


class LiftPageProvider(HTTPProvider):
    """Downloads the lift page HTML.

    Raw payload shape: ``{"provider": ..., "url": ..., "html": ...}``.
    """

    provider_id = "lift-page"

    def __init__(
        self,
        url: Optional[str] = None,
        enabled: bool = True,
        session: Optional[requests.Session] = None,
        request_config: Optional[RequestConfig] = None,
    ) -> None:
        super().__init__(session=session, request_config=request_config)
        self.url = url
        self.enabled = enabled

    def is_configured(self) -> bool:
        return self.enabled

    def fetch(self, subject: Subject) -> dict[str, Any]:
        url = self.url or subject.resort.lift_status_url
        logger.info(f"Scraping lift status from {url}")
        html = self._get_text(url)
        if not html.strip():
            raise MalformedPayload("Lift page is empty", self.provider_id)
        return {"provider": self.provider_id, "url": url, "html": html}


class LiftTableProvider(LiftPageProvider):
    """Lift status from the page's status table (○ open, × closed)."""

    provider_id = "lift-table"


class LiftIconProvider(LiftPageProvider):
    """Lift status from the page's lift icons (``*_on.gif`` open)."""

    provider_id = "lift-icons"
