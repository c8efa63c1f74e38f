"""
Tests for identity scoring and geographic comparison
"""

import pytest

from attribution_worker.domains.attribution.models import (
    AttributionMethod,
    GeoMode,
    GeoRecord,
    MatchConfidence,
)
from attribution_worker.domains.attribution.services import (
    IdentityMatcher,
    compare_geo,
    compare_isps,
)

from conftest import make_conversion, make_pageview


def geo(ip="203.0.113.10", city="Austin", region="Texas", country="US", isp="AS7922 Comcast"):
    return GeoRecord(ip=ip, city=city, region=region, country=country, isp=isp)


class TestIspComparison:
    @pytest.mark.parametrize(
        "isp_a, isp_b",
        [
            ("Comcast Cable", "comcast-cable"),
            ("Comcast", "Comcast Cable Communications"),
            ("AS7922 Comcast", "as7922 Xfinity"),
        ],
    )
    def test_matching_isps(self, isp_a, isp_b):
        assert compare_isps(isp_a, isp_b)

    @pytest.mark.parametrize(
        "isp_a, isp_b",
        [
            ("Comcast", "Verizon"),
            ("Unknown", "Unknown"),
            ("", "Comcast"),
            (None, "Comcast"),
            ("LOOKUP_FAILED", "LOOKUP_FAILED"),
        ],
    )
    def test_non_matching_isps(self, isp_a, isp_b):
        assert not compare_isps(isp_a, isp_b)


class TestGeoComparison:
    def test_full_agreement_is_definite(self, config):
        result = compare_geo(geo(), geo(ip="198.51.100.7"), config=config)

        assert result.is_match
        assert result.score == 8
        assert result.confidence == MatchConfidence.DEFINITE

    def test_region_and_isp_without_city_is_strong(self, config):
        result = compare_geo(geo(), geo(city="Dallas"), config=config)

        assert result.is_match
        assert result.score == 5
        assert result.confidence == MatchConfidence.STRONG

    def test_region_and_country_below_threshold(self, config):
        result = compare_geo(geo(), geo(city="Dallas", isp="Verizon"), config=config)

        assert result.score == 3
        assert not result.is_match
        assert result.confidence == MatchConfidence.NO_MATCH

    def test_lookup_failure_never_matches(self, config):
        result = compare_geo(geo(), GeoRecord.lookup_failed("198.51.100.7"), config=config)

        assert not result.is_match
        assert result.confidence == MatchConfidence.LOOKUP_FAILED

    def test_unknown_fields_do_not_count_as_equal(self, config):
        unknown = GeoRecord(ip="198.51.100.7")
        result = compare_geo(unknown, GeoRecord(ip="198.51.100.8"), config=config)

        assert result.score == 0
        assert not result.is_match

    def test_strict_requires_city(self, config):
        other = geo(city="Dallas")

        assert compare_geo(geo(), other, GeoMode.STANDARD, config).is_match
        strict = compare_geo(geo(), other, GeoMode.STRICT, config)
        assert not strict.is_match
        assert strict.confidence == MatchConfidence.NO_CITY_MATCH

    def test_city_only_matches_in_both_modes(self, config):
        other = geo(region="Ohio", country="CA", isp="Verizon")

        standard = compare_geo(geo(), other, GeoMode.STANDARD, config)
        strict = compare_geo(geo(), other, GeoMode.STRICT, config)

        assert standard.score == strict.score == 3
        assert standard.is_match and strict.is_match
        assert strict.confidence == MatchConfidence.POSSIBLE

    @pytest.mark.parametrize(
        "other",
        [
            geo(),
            geo(city="Dallas"),
            geo(isp="Verizon"),
            geo(region="Ohio", country="CA", isp="Verizon"),
            geo(city="Dallas", region="Ohio"),
            GeoRecord(ip="198.51.100.9"),
        ],
    )
    def test_strict_match_implies_standard_match(self, config, other):
        strict = compare_geo(geo(), other, GeoMode.STRICT, config)
        standard = compare_geo(geo(), other, GeoMode.STANDARD, config)

        if strict.is_match:
            assert standard.is_match
            assert standard.confidence.rank >= strict.confidence.rank


class TestIdentityMatcher:
    @pytest.fixture
    def matcher(self, config):
        return IdentityMatcher(config)

    def test_session_match_is_definite(self, matcher):
        conversion = make_conversion(session_id="s-1")
        result = matcher.score(conversion, make_pageview(session_id="s-1"))

        assert result.is_match
        assert result.method == AttributionMethod.SESSION_ID
        assert result.points == 300
        assert result.confidence == MatchConfidence.DEFINITE

    def test_fingerprint_equality(self, matcher):
        conversion = make_conversion(device_signature="fp-9")
        result = matcher.score(conversion, make_pageview(canvas_fingerprint="fp-9"))

        assert result.method == AttributionMethod.DEVICE_FINGERPRINT
        assert result.points == 295
        assert result.confidence == MatchConfidence.DEFINITE

    @pytest.mark.parametrize(
        "ip, method, points, tier",
        [
            ("2001:db8::1", AttributionMethod.PRIMARY_IP, 280, MatchConfidence.STRONG),
            ("203.0.113.10", AttributionMethod.CONVERSION_IP, 260, MatchConfidence.STRONG),
            ("192.0.2.44", AttributionMethod.FALLBACK_IP, 240, MatchConfidence.STRONG),
        ],
    )
    def test_ip_method_follows_conversion_field(self, matcher, ip, method, points, tier):
        conversion = make_conversion(
            primary_ip="2001:db8::1",
            conversion_ip="203.0.113.10",
            ip_addresses=["2001:db8::1", "203.0.113.10", "192.0.2.44"],
        )
        result = matcher.score(conversion, make_pageview(ip_address=ip))

        assert result.method == method
        assert result.points == points
        assert result.confidence == tier
        assert result.matched_ip == ip

    def test_pointer_retrieval_scores_the_path(self, matcher):
        conversion = make_conversion(screen_value="1920x1080")
        result = matcher.score(
            conversion,
            make_pageview(ip_address="198.51.100.1"),
            via=AttributionMethod.SCREEN_SIGNATURE,
        )

        assert result.method == AttributionMethod.SCREEN_SIGNATURE
        assert result.points == 200
        assert result.confidence == MatchConfidence.POSSIBLE

    def test_exact_signal_beats_pointer_path(self, matcher):
        conversion = make_conversion(session_id="s-1", gpu_signature="gpu")
        result = matcher.score(
            conversion,
            make_pageview(session_id="s-1"),
            via=AttributionMethod.WEBGL_SIGNATURE,
        )

        assert result.method == AttributionMethod.SESSION_ID

    def test_geographic_fallback(self, matcher):
        conversion = make_conversion(primary_ip="203.0.113.10", ip_addresses=["203.0.113.10"])
        result = matcher.score(
            conversion,
            make_pageview(ip_address="198.51.100.7"),
            conversion_geo=geo(),
            pageview_geo=geo(ip="198.51.100.7"),
        )

        assert result.method == AttributionMethod.GEOGRAPHIC
        assert result.points == 100
        assert result.score == 8
        assert result.confidence == MatchConfidence.DEFINITE

    def test_no_evidence_is_no_match(self, matcher):
        conversion = make_conversion(ip_addresses=["203.0.113.10"])
        result = matcher.score(conversion, make_pageview(ip_address="198.51.100.7"))

        assert not result.is_match
        assert result.confidence == MatchConfidence.NO_MATCH

    def test_scoring_is_symmetric_in_geo(self, matcher):
        a, b = geo(), geo(ip="198.51.100.7", city="Dallas")
        assert matcher.compare_geo(a, b) == matcher.compare_geo(b, a)
