"""Schema normalization: one adapter per provider, one entry point.

Usage:
    from snowstatus.normalize import normalize

    payload = normalize("open-meteo", raw, subject, now)
"""

from datetime import datetime
from typing import Callable

from snowstatus.cache.models import Payload, Subject
from snowstatus.errors import MalformedPayload
from snowstatus.normalize.lifts import normalize_lift_icons, normalize_lift_table
from snowstatus.normalize.weather import normalize_open_meteo, normalize_wwo

NORMALIZERS: dict[str, Callable[[dict, Subject, datetime], Payload]] = {
    "open-meteo": normalize_open_meteo,
    "wwo": normalize_wwo,
    "lift-table": normalize_lift_table,
    "lift-icons": normalize_lift_icons,
}


def normalize(provider_id: str, raw: dict, subject: Subject, now: datetime) -> Payload:
    """Map a provider's raw payload into the canonical payload model.

    Any shape problem surfaces as MalformedPayload so the provider chain
    treats it like any other provider failure.
    """
    try:
        adapter = NORMALIZERS[provider_id]
    except KeyError:
        raise MalformedPayload(f"No normalizer registered for {provider_id}", provider_id)

    try:
        return adapter(raw, subject, now)
    except MalformedPayload as e:
        if e.provider_id is None:
            e.provider_id = provider_id
        raise
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
        raise MalformedPayload(
            f"{provider_id} payload could not be normalized: {e!r}", provider_id
        ) from e


__all__ = ["NORMALIZERS", "normalize"]
