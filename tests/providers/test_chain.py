"""Tests for ordered provider fallback."""

import threading

import pytest

from snowstatus.cache.models import Origin
from snowstatus.errors import (
    AllSourcesExhausted,
    MalformedPayload,
    ProviderHTTPError,
    ProviderUnavailable,
)
from snowstatus.providers.chain import ProviderChain


def passthrough(provider_id, raw, subject, now):
    """Normalizer stand-in: rejects raw payloads flagged as bad."""
    if raw.get("bad"):
        raise MalformedPayload("unexpected body", provider_id)
    return {"from": provider_id, **raw}


@pytest.fixture
def make_chain():
    chains = []

    def make(*providers, timeout_seconds=5.0):
        chain = ProviderChain(list(providers), passthrough, timeout_seconds=timeout_seconds)
        chains.append(chain)
        return chain

    yield make
    for chain in chains:
        chain.close()


class TestProviderChain:
    """Tests for ProviderChain."""

    def test_primary_success(self, make_chain, stub_provider, weather_subject_nozawa):
        primary = stub_provider("wwo", raw={"t": 1})
        secondary = stub_provider("open-meteo", raw={"t": 2})

        result = make_chain(primary, secondary).fetch(weather_subject_nozawa)

        assert result.ok
        assert result.provider_id == "wwo"
        assert result.origin is Origin.PROVIDER_PRIMARY
        assert result.fallback is False
        assert result.payload == {"from": "wwo", "t": 1}
        assert secondary.calls == 0

    def test_fallback_to_secondary(self, make_chain, stub_provider, weather_subject_nozawa):
        primary = stub_provider("wwo", error=ProviderHTTPError("wwo returned HTTP 500", 500, "wwo"))
        secondary = stub_provider("open-meteo", raw={"t": 2})

        result = make_chain(primary, secondary).fetch(weather_subject_nozawa)

        assert result.provider_id == "open-meteo"
        assert result.origin is Origin.PROVIDER_SECONDARY
        assert result.fallback is True
        assert result.fallback_reason == "wwo returned HTTP 500"
        assert [a.ok for a in result.attempts] == [False, True]
        assert result.attempts[0].error_kind == "http-error"

    def test_malformed_primary_falls_back(self, make_chain, stub_provider, weather_subject_nozawa):
        primary = stub_provider("wwo", raw={"bad": True})
        secondary = stub_provider("open-meteo", raw={"t": 2})

        result = make_chain(primary, secondary).fetch(weather_subject_nozawa)

        assert result.provider_id == "open-meteo"
        assert result.attempts[0].error_kind == "malformed-body"

    def test_all_fail(self, make_chain, stub_provider, weather_subject_nozawa):
        primary = stub_provider("wwo", error=ProviderUnavailable("down", "wwo"))
        secondary = stub_provider("open-meteo", error=ProviderUnavailable("also down", "open-meteo"))
        chain = make_chain(primary, secondary)

        result = chain.fetch_result(weather_subject_nozawa)

        assert not result.ok
        assert isinstance(result.error, AllSourcesExhausted)
        assert len(result.error.attempts) == 2
        assert "also down" in str(result.error)

        with pytest.raises(AllSourcesExhausted):
            chain.fetch(weather_subject_nozawa)

    def test_no_retry_within_one_evaluation(self, make_chain, stub_provider, weather_subject_nozawa):
        primary = stub_provider("wwo", error=ProviderUnavailable("down", "wwo"))
        secondary = stub_provider("open-meteo", error=ProviderUnavailable("down", "open-meteo"))

        make_chain(primary, secondary).fetch_result(weather_subject_nozawa)

        assert primary.calls == 1
        assert secondary.calls == 1

    def test_unconfigured_primary_skipped(self, make_chain, stub_provider, weather_subject_nozawa):
        primary = stub_provider("wwo", configured=False)
        secondary = stub_provider("open-meteo", raw={"t": 2})
        chain = make_chain(primary, secondary)

        result = chain.fetch(weather_subject_nozawa)

        assert chain.active_provider_ids == ["open-meteo"]
        assert primary.calls == 0
        assert result.origin is Origin.PROVIDER_SECONDARY
        assert [a.provider_id for a in result.attempts] == ["open-meteo"]

    def test_nothing_configured(self, make_chain, stub_provider, weather_subject_nozawa):
        chain = make_chain(stub_provider("wwo", configured=False))

        with pytest.raises(AllSourcesExhausted):
            chain.fetch(weather_subject_nozawa)

    def test_timeout_falls_back(self, make_chain, stub_provider, weather_subject_nozawa):
        gate = threading.Event()
        primary = stub_provider("wwo", raw={"t": 1}, gate=gate)
        secondary = stub_provider("open-meteo", raw={"t": 2})

        try:
            result = make_chain(primary, secondary, timeout_seconds=0.1).fetch(
                weather_subject_nozawa
            )
        finally:
            gate.set()

        assert result.provider_id == "open-meteo"
        assert result.attempts[0].error_kind == "timeout"

    def test_requires_providers(self):
        with pytest.raises(ValueError):
            ProviderChain([], passthrough)

    def test_describe(self, make_chain, stub_provider):
        chain = make_chain(stub_provider("wwo", configured=False), stub_provider("open-meteo"))

        assert chain.describe() == {
            "primary": "wwo",
            "providers": ["wwo", "open-meteo"],
            "active": ["open-meteo"],
            "timeout_seconds": 5.0,
        }
