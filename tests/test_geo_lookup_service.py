"""
Tests for the geo lookup cache layers and provider failure handling
"""

import httpx
import pytest

from attribution_worker.domains.attribution.models import GeoRecord
from attribution_worker.domains.attribution.services import GeoLookupService
from attribution_worker.domains.attribution.services.geo_lookup_service import (
    GeoMemoryCache,
    parse_provider_payload,
)

from conftest import FakeClock

IPINFO_PAYLOAD = {
    "ip": "203.0.113.10",
    "city": "Austin",
    "region": "Texas",
    "country": "US",
    "loc": "30.2672,-97.7431",
    "org": "AS7922 Comcast Cable Communications, LLC",
    "timezone": "America/Chicago",
}


class ProviderStub:
    """Counts provider calls and answers with a fixed response"""

    def __init__(self, status_code=200, payload=None, error=None):
        self.status_code = status_code
        self.payload = IPINFO_PAYLOAD if payload is None else payload
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.payload)


def make_service(store, provider, **kwargs):
    return GeoLookupService(
        store=store,
        token="test-token",
        base_url="https://ipinfo.test",
        enabled=True,
        transport=httpx.MockTransport(provider),
        **kwargs,
    )


class TestGeoLookupService:
    @pytest.mark.asyncio
    async def test_provider_result_is_cached_in_both_layers(self, store):
        provider = ProviderStub()
        service = make_service(store, provider)

        first = await service.resolve("203.0.113.10")
        second = await service.resolve("203.0.113.10")

        assert first.city == "Austin"
        assert first.isp == "AS7922 Comcast Cable Communications, LLC"
        assert second == first
        assert len(provider.requests) == 1
        assert provider.requests[0].url.params["token"] == "test-token"
        assert store.ttls["geo_cache:203.0.113.10"] == 86400
        await service.close()

    @pytest.mark.asyncio
    async def test_store_cache_is_used_before_provider(self, store):
        store.put(
            "geo_cache:2001_db8__1",
            GeoRecord(ip="2001:db8::1", city="Berlin", country="DE").model_dump(),
        )
        provider = ProviderStub()
        service = make_service(store, provider)

        record = await service.resolve("2001:db8::1")

        assert record.city == "Berlin"
        assert provider.requests == []
        await service.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "provider",
        [
            ProviderStub(status_code=429, payload={}),
            ProviderStub(status_code=500, payload={}),
            ProviderStub(payload={"ip": "10.0.0.1", "bogon": True}),
            ProviderStub(error=httpx.ConnectTimeout("timed out")),
            ProviderStub(error=httpx.ConnectError("refused")),
        ],
    )
    async def test_failures_return_sentinel_and_are_not_cached(self, store, provider):
        service = make_service(store, provider)

        record = await service.resolve("10.0.0.1")

        assert record.is_lookup_failed
        assert record.city == "LOOKUP_FAILED"
        assert "geo_cache:10.0.0.1" not in store.data
        assert len(service.memory_cache) == 0
        await service.close()

    @pytest.mark.asyncio
    async def test_store_outage_degrades_to_provider(self, store):
        store.failing_keys.add("geo_cache:203.0.113.10")
        provider = ProviderStub()
        service = make_service(store, provider)

        record = await service.resolve("203.0.113.10")

        assert record.city == "Austin"
        assert len(provider.requests) == 1
        await service.close()

    @pytest.mark.asyncio
    async def test_disabled_lookup_never_calls_provider(self, store):
        provider = ProviderStub()
        service = GeoLookupService(
            store=store, enabled=False, transport=httpx.MockTransport(provider)
        )

        record = await service.resolve("203.0.113.10")

        assert record.is_lookup_failed
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_resolve_many_dedupes_inputs(self, store):
        provider = ProviderStub()
        service = make_service(store, provider, fan_out=2)

        records = await service.resolve_many(["203.0.113.10", None, "203.0.113.10", ""])

        assert list(records) == ["203.0.113.10"]
        assert len(provider.requests) == 1
        await service.close()

    @pytest.mark.asyncio
    async def test_empty_ip_is_sentinel(self, store):
        service = make_service(store, ProviderStub())
        assert (await service.resolve("")).is_lookup_failed


class TestGeoMemoryCache:
    def test_entries_expire(self):
        clock = FakeClock()
        cache = GeoMemoryCache(max_size=10, ttl_seconds=60, clock=clock)
        cache.put("a", GeoRecord(ip="a"))

        clock.advance(59)
        assert cache.get("a") is not None
        clock.advance(2)
        assert cache.get("a") is None

    def test_least_recently_used_is_evicted(self):
        cache = GeoMemoryCache(max_size=2, ttl_seconds=60, clock=FakeClock())
        cache.put("a", GeoRecord(ip="a"))
        cache.put("b", GeoRecord(ip="b"))
        cache.get("a")
        cache.put("c", GeoRecord(ip="c"))

        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert len(cache) == 2


class TestPayloadParsing:
    def test_company_name_preferred_over_org(self):
        payload = dict(IPINFO_PAYLOAD, company={"name": "Comcast"})
        assert parse_provider_payload("203.0.113.10", payload).isp == "Comcast"

    def test_missing_fields_become_unknown(self):
        record = parse_provider_payload("203.0.113.10", {})

        assert record.city == "Unknown"
        assert record.coordinates == "0,0"
        assert not record.is_lookup_failed
