"""
Tests for attribution resolution over the reverse indexes and explicit candidates
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from attribution_worker.domains.attribution.models import (
    AttributionMethod,
    GeoMode,
    GeoRecord,
    MatchConfidence,
)
from attribution_worker.domains.attribution.repositories import PageviewRepository
from attribution_worker.domains.attribution.services import (
    AttributionResolver,
    IdentityMatcher,
)

from conftest import CONVERSION_TIME, make_conversion, make_pageview, pageview_record


def austin(ip):
    return GeoRecord(ip=ip, city="Austin", region="Texas", country="US", isp="Comcast")


class TestIndexedResolution:
    @pytest.fixture
    def resolver(self, store, config):
        return AttributionResolver(
            PageviewRepository(store), matcher=IdentityMatcher(config), config=config
        )

    @pytest.mark.asyncio
    async def test_session_path_wins_and_stops(self, store, resolver):
        store.put("pageview:1", pageview_record(20, session_id="s-1"))
        store.put("attribution_session_s-1", "pageview:1")
        store.put("pageview:2", pageview_record(10, ip_address="203.0.113.10"))
        store.put("attribution_ip_203.0.113.10", "pageview:2")

        conversion = make_conversion(session_id="s-1", ip_addresses=["203.0.113.10"])
        matches = await resolver.resolve(conversion)

        assert len(matches) == 1
        assert matches[0].attribution_method == AttributionMethod.SESSION_ID
        assert matches[0].confidence == 300

    @pytest.mark.asyncio
    async def test_ip_path_uses_first_ip_with_hits(self, store, resolver):
        store.put("pageview:1", pageview_record(40, ip_address="192.0.2.44"))
        store.put("attribution_ip_192.0.2.44", "pageview:1")
        store.put(
            "pageview_index_ip:2001_db8__1",
            {"pageviews": [pageview_record(15, ip_address="2001:db8::1", session_id="a")]},
        )

        conversion = make_conversion(
            primary_ip="2001:db8::1",
            ip_addresses=["2001:db8::1", "192.0.2.44"],
        )
        matches = await resolver.resolve(conversion)

        assert [m.attribution_method for m in matches] == [AttributionMethod.PRIMARY_IP]
        assert matches[0].matched_ip == "2001:db8::1"

    @pytest.mark.asyncio
    async def test_fallback_ip_when_earlier_ips_miss(self, store, resolver):
        store.put("pageview:1", pageview_record(40, ip_address="192.0.2.44"))
        store.put("attribution_ip_192.0.2.44", "pageview:1")

        conversion = make_conversion(
            primary_ip="2001:db8::1",
            ip_addresses=["2001:db8::1", "192.0.2.44"],
        )
        matches = await resolver.resolve(conversion)

        assert matches[0].attribution_method == AttributionMethod.FALLBACK_IP
        assert matches[0].confidence_tier == MatchConfidence.STRONG

    @pytest.mark.asyncio
    async def test_same_visit_through_pointer_and_index_is_deduped(self, store, resolver):
        record = pageview_record(25, ip_address="203.0.113.10")
        store.put("pageview:1", record)
        store.put("attribution_ip_203.0.113.10", "pageview:1")
        store.put("pageview_index_ip:203.0.113.10", {"pageviews": [record]})

        conversion = make_conversion(conversion_ip="203.0.113.10", ip_addresses=["203.0.113.10"])
        matches = await resolver.resolve(conversion)

        assert len(matches) == 1
        assert matches[0].attribution_method == AttributionMethod.CONVERSION_IP

    @pytest.mark.asyncio
    async def test_screen_path_after_ips(self, store, resolver):
        store.put("pageview:9", pageview_record(50, ip_address="198.51.100.1"))
        store.put("attribution_screen_1920x1080", "pageview:9")

        conversion = make_conversion(screen_value="1920x1080", ip_addresses=["203.0.113.10"])
        matches = await resolver.resolve(conversion)

        assert matches[0].attribution_method == AttributionMethod.SCREEN_SIGNATURE
        assert matches[0].confidence_tier == MatchConfidence.POSSIBLE

    @pytest.mark.asyncio
    async def test_out_of_window_hits_fall_through(self, store, resolver):
        store.put("pageview:1", pageview_record(60 * 80, session_id="s-1"))
        store.put("attribution_session_s-1", "pageview:1")

        matches = await resolver.resolve(make_conversion(session_id="s-1"), window_hours=72)

        assert matches == []

    @pytest.mark.asyncio
    async def test_malformed_records_are_skipped(self, store, resolver):
        store.data["pageview:bad"] = "%7Bnot json"
        store.put("pageview:good", pageview_record(5, session_id="s-1"))
        store.data["attribution_session_s-1"] = '["pageview:bad", "pageview:good"]'

        repository = resolver.pageviews
        matches = await resolver.resolve(make_conversion(session_id="s-1"))

        assert len(matches) == 1
        assert repository.malformed_count == 1

    @pytest.mark.asyncio
    async def test_results_are_chronological(self, store, resolver):
        store.put(
            "pageview_index_ip:203.0.113.10",
            [
                pageview_record(5, ip_address="203.0.113.10", session_id="c"),
                pageview_record(90, ip_address="203.0.113.10", session_id="a"),
                pageview_record(30, ip_address="203.0.113.10", session_id="b"),
            ],
        )

        conversion = make_conversion(conversion_ip="203.0.113.10", ip_addresses=["203.0.113.10"])
        matches = await resolver.resolve(conversion)

        assert [m.pageview.session_id for m in matches] == ["a", "b", "c"]


class TestCandidateResolution:
    @pytest.fixture
    def geo_service(self):
        service = MagicMock()
        service.resolve_many = AsyncMock(
            side_effect=lambda ips: {ip: austin(ip) for ip in ips if ip}
        )
        return service

    @pytest.fixture
    def resolver(self, store, config, geo_service):
        return AttributionResolver(
            PageviewRepository(store), geo_service=geo_service, config=config
        )

    @pytest.mark.asyncio
    async def test_window_is_inclusive_at_both_ends(self, resolver):
        conversion = make_conversion(session_id="s-1")
        window_start = CONVERSION_TIME - timedelta(hours=72)
        candidates = [
            make_pageview(0, session_id="s-1", ip_address="a"),
            make_pageview(72 * 60, session_id="s-1", ip_address="b"),
            make_pageview(72 * 60 + 1 / 60, session_id="s-1", ip_address="c"),
            make_pageview(session_id="s-1", ip_address="e").model_copy(
                update={"timestamp": window_start - timedelta(microseconds=1)}
            ),
            make_pageview(-1, session_id="s-1", ip_address="d"),
        ]

        matches = await resolver.resolve(conversion, window_hours=72, candidates=candidates)

        assert sorted(m.pageview.ip_address for m in matches) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_identity_first_then_geo_for_the_rest(self, resolver, geo_service):
        conversion = make_conversion(
            session_id="s-1", primary_ip="203.0.113.10", ip_addresses=["203.0.113.10"]
        )
        candidates = [
            make_pageview(10, session_id="s-1"),
            make_pageview(20, ip_address="198.51.100.7"),
        ]

        matches = await resolver.resolve(conversion, candidates=candidates)

        methods = {m.attribution_method for m in matches}
        assert methods == {AttributionMethod.SESSION_ID, AttributionMethod.GEOGRAPHIC}
        geo_service.resolve_many.assert_awaited_once_with(["203.0.113.10", "198.51.100.7"])

    @pytest.mark.asyncio
    async def test_no_geo_lookup_when_identity_resolves_everything(self, resolver, geo_service):
        conversion = make_conversion(session_id="s-1", primary_ip="203.0.113.10")

        await resolver.resolve(conversion, candidates=[make_pageview(10, session_id="s-1")])

        geo_service.resolve_many.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_best_prefers_tier_then_recency(self, resolver, geo_service):
        geo_service.resolve_many.side_effect = lambda ips: {
            ip: austin(ip) if ip != "198.51.100.8" else GeoRecord(
                ip=ip, city="Austin", region="Ohio", country="CA", isp="Verizon"
            )
            for ip in ips
        }
        conversion = make_conversion(primary_ip="203.0.113.10", ip_addresses=["203.0.113.10"])
        candidates = [
            make_pageview(5, ip_address="198.51.100.8"),
            make_pageview(50, ip_address="198.51.100.7"),
            make_pageview(60, ip_address="198.51.100.9"),
        ]

        matches = await resolver.resolve(conversion, candidates=candidates, best=True)

        assert len(matches) == 1
        assert matches[0].pageview.ip_address == "198.51.100.7"
        assert matches[0].confidence_tier == MatchConfidence.DEFINITE

    @pytest.mark.asyncio
    async def test_strict_mode_drops_city_mismatch(self, resolver, geo_service):
        geo_service.resolve_many.side_effect = lambda ips: {
            ip: austin(ip) if ip == "203.0.113.10" else GeoRecord(
                ip=ip, city="Dallas", region="Texas", country="US", isp="Comcast"
            )
            for ip in ips
        }
        conversion = make_conversion(primary_ip="203.0.113.10", ip_addresses=["203.0.113.10"])
        candidates = [make_pageview(10, ip_address="198.51.100.7")]

        standard = await resolver.resolve(conversion, candidates=candidates)
        strict = await resolver.resolve(
            conversion, candidates=candidates, geo_mode=GeoMode.STRICT, best=True
        )

        assert len(standard) == 1
        assert strict == []

    @pytest.mark.asyncio
    async def test_empty_candidates(self, resolver):
        conversion = make_conversion(primary_ip="203.0.113.10")
        assert await resolver.resolve(conversion, candidates=[]) == []

    @pytest.mark.asyncio
    async def test_conversion_without_signals_matches_nothing(self, resolver):
        conversion = make_conversion()

        matches = await resolver.resolve(
            conversion,
            candidates=[make_pageview(10, ip_address="198.51.100.7")],
        )

        assert matches == []
