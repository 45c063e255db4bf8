"""Error taxonomy for snowstatus.

Provider failures are recovered inside ProviderChain, store failures inside
CacheCoordinator. Only AllSourcesExhausted reaches callers of the cache.
"""

from typing import Optional


class SnowStatusError(Exception):
    """Base class for all snowstatus errors."""


class ProviderError(SnowStatusError):
    """A provider could not produce a usable payload.

    Attributes:
        kind: Failure class (timeout, http-error, malformed-body, not-configured, unavailable)
        provider_id: Provider that failed, when known
    """

    kind = "unavailable"

    def __init__(self, message: str, provider_id: Optional[str] = None):
        super().__init__(message)
        self.provider_id = provider_id


class ProviderUnavailable(ProviderError):
    """Network error, timeout or non-success status."""


class ProviderTimeout(ProviderUnavailable):
    """Provider did not answer within its bounded timeout."""

    kind = "timeout"


class ProviderHTTPError(ProviderUnavailable):
    """Provider answered with a non-success HTTP status."""

    kind = "http-error"

    def __init__(self, message: str, status_code: int, provider_id: Optional[str] = None):
        super().__init__(message, provider_id)
        self.status_code = status_code


class MalformedPayload(ProviderError):
    """Raw payload cannot be normalized into the canonical model."""

    kind = "malformed-body"


class ProviderNotConfigured(ProviderError):
    """Provider is missing its credential or is disabled."""

    kind = "not-configured"


class PersistenceReadFailed(SnowStatusError):
    """Snapshot store could not be read."""


class PersistenceWriteFailed(SnowStatusError):
    """Snapshot store could not be written."""


class AllSourcesExhausted(SnowStatusError):
    """No provider succeeded and no Reading of any age is available.

    Attributes:
        subject_id: Subject that could not be served
        attempts: Per-provider attempt records from the chain
    """

    def __init__(self, subject_id: str, attempts: Optional[list] = None):
        self.subject_id = subject_id
        self.attempts = list(attempts or [])
        reasons = "; ".join(f"{a.provider_id}: {a.error}" for a in self.attempts)
        message = f"All sources exhausted for {subject_id}"
        if reasons:
            message = f"{message} ({reasons})"
        super().__init__(message)
