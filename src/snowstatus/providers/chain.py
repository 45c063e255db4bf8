"""Ordered provider fallback.

The chain evaluates its configured providers in order, stopping at the
first one whose payload normalizes cleanly. Each attempt is captured as an
``Attempt`` record; the outcome is a ``ChainResult`` that is either ok
(payload + origin tags) or carries a single ``AllSourcesExhausted``.
There is no retry inside one evaluation.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from snowstatus.cache.models import Origin, Payload, Subject, utc_now
from snowstatus.errors import AllSourcesExhausted, ProviderError, ProviderTimeout
from snowstatus.providers.base import Provider

logger = logging.getLogger(__name__)

# (provider_id, raw, subject, now) -> normalized payload; raises MalformedPayload
Normalizer = Callable[[str, dict, Subject, datetime], Payload]

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass
class Attempt:
    """Outcome of invoking one provider."""

    provider_id: str
    origin: Origin
    ok: bool
    duration_ms: int
    error: Optional[str] = None
    error_kind: Optional[str] = None


@dataclass
class ChainResult:
    """Tagged result of one chain evaluation.

    Exactly one of ``payload`` and ``error`` is set.
    """

    subject_id: str
    attempts: list[Attempt] = field(default_factory=list)
    payload: Optional[Payload] = None
    raw: Optional[dict[str, Any]] = None
    provider_id: Optional[str] = None
    origin: Optional[Origin] = None
    fallback: bool = False
    fallback_reason: Optional[str] = None
    error: Optional[AllSourcesExhausted] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> "ChainResult":
        """Return self if ok, otherwise raise the aggregated failure."""
        if self.error is not None:
            raise self.error
        return self


class ProviderChain:
    """Primary provider with ordered fallbacks.

    Position in ``providers`` defines the role: index 0 is the primary,
    the rest are secondaries. Providers that are not configured are left
    out once, at construction, and this is logged then rather than per
    request.

    Args:
        providers: Ordered providers, primary first
        normalizer: Maps a provider's raw payload into the canonical model
        timeout_seconds: Bound on one provider invocation
        name: Label used in log messages
    """

    def __init__(
        self,
        providers: list[Provider],
        normalizer: Normalizer,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        name: str = "providers",
    ):
        if not providers:
            raise ValueError("ProviderChain needs at least one provider")

        self.providers = list(providers)
        self.normalizer = normalizer
        self.timeout_seconds = timeout_seconds
        self.name = name
        self._active = [
            (index, provider)
            for index, provider in enumerate(self.providers)
            if provider.is_configured()
        ]
        self._executor = ThreadPoolExecutor(
            max_workers=max(2, len(self.providers) * 2),
            thread_name_prefix=f"{name}-provider",
        )

        active_ids = [p.provider_id for _, p in self._active]
        if not self._active:
            logger.error(f"[{name}] No provider is configured; every fetch will fail")
        elif self._active[0][0] != 0:
            logger.warning(
                f"[{name}] Primary {self.providers[0].provider_id} not configured, "
                f"using {', '.join(active_ids)} only"
            )
        else:
            logger.info(f"[{name}] Provider order: {' -> '.join(active_ids)}")

    @property
    def active_provider_ids(self) -> list[str]:
        return [provider.provider_id for _, provider in self._active]

    def describe(self) -> dict:
        """Chain composition for status output."""
        return {
            "primary": self.providers[0].provider_id,
            "providers": [p.provider_id for p in self.providers],
            "active": self.active_provider_ids,
            "timeout_seconds": self.timeout_seconds,
        }

    def fetch_result(self, subject: Subject, now: Optional[datetime] = None) -> ChainResult:
        """Evaluate the chain once. Never raises for provider failures.

        Args:
            subject: Subject to fetch
            now: Reference time handed to the normalizer (default: now)

        Returns:
            ChainResult, ok or carrying AllSourcesExhausted
        """
        now = now or utc_now()
        result = ChainResult(subject_id=subject.subject_id)

        for index, provider in self._active:
            origin = Origin.PROVIDER_PRIMARY if index == 0 else Origin.PROVIDER_SECONDARY
            start = time.monotonic()
            try:
                raw = self._invoke(provider, subject)
                payload = self.normalizer(provider.provider_id, raw, subject, now)
            except ProviderError as e:
                duration_ms = int((time.monotonic() - start) * 1000)
                result.attempts.append(
                    Attempt(provider.provider_id, origin, False, duration_ms, str(e), e.kind)
                )
                logger.warning(
                    f"[{self.name}] {provider.provider_id} failed for "
                    f"{subject.subject_id} ({e.kind}): {e}"
                )
                continue

            duration_ms = int((time.monotonic() - start) * 1000)
            result.attempts.append(Attempt(provider.provider_id, origin, True, duration_ms))
            result.payload = payload
            result.raw = raw
            result.provider_id = provider.provider_id
            result.origin = origin
            failed = [a for a in result.attempts if not a.ok]
            if failed:
                result.fallback = True
                result.fallback_reason = failed[0].error
                logger.warning(
                    f"[{self.name}] Fell back to {provider.provider_id} for "
                    f"{subject.subject_id}: {result.fallback_reason}"
                )
            return result

        result.error = AllSourcesExhausted(subject.subject_id, result.attempts)
        return result

    def fetch(self, subject: Subject, now: Optional[datetime] = None) -> ChainResult:
        """Evaluate the chain, raising AllSourcesExhausted if every provider fails."""
        return self.fetch_result(subject, now).unwrap()

    def _invoke(self, provider: Provider, subject: Subject) -> dict:
        future = self._executor.submit(provider.fetch, subject)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            future.cancel()
            raise ProviderTimeout(
                f"{provider.provider_id} exceeded {self.timeout_seconds}s",
                provider.provider_id,
            )

    def close(self) -> None:
        self._executor.shutdown(wait=False)
