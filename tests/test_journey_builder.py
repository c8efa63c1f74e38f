"""
Tests for journey assembly and the conversion-only journey
"""

from datetime import timedelta

import pytest

from attribution_worker.domains.attribution.models import (
    AttributionMethod,
    JourneyState,
    MatchConfidence,
    MatchedPageview,
    TouchpointType,
)
from attribution_worker.domains.attribution.services import JourneyBuilder
from attribution_worker.shared.helpers.datetime_utils import epoch_millis

from conftest import CONVERSION_TIME, make_conversion, make_pageview

BUILT_AT = CONVERSION_TIME + timedelta(hours=1)


def matched(pageview, method=AttributionMethod.SESSION_ID, confidence=300):
    return MatchedPageview(
        pageview=pageview,
        attribution_method=method,
        confidence=confidence,
        confidence_tier=MatchConfidence.DEFINITE,
        score=confidence,
    )


class TestJourneyBuilder:
    @pytest.fixture
    def builder(self, config):
        return JourneyBuilder(config, clock=lambda: BUILT_AT)

    @pytest.fixture
    def matches(self):
        return [
            matched(make_pageview(30, session_id="s-2", source="email", canvas_fingerprint="fp-1")),
            matched(
                make_pageview(120, session_id="s-1", source="google", canvas_fingerprint="fp-1"),
                AttributionMethod.PRIMARY_IP,
                280,
            ),
            matched(make_pageview(10, session_id="s-2", source="email", canvas_fingerprint="fp-2")),
        ]

    def test_touchpoints_are_ordered_and_end_with_conversion(self, builder, matches):
        journey = builder.build(make_conversion(), matches)

        timestamps = [tp.timestamp for tp in journey.touchpoints]
        assert timestamps == sorted(timestamps)
        assert journey.total_touchpoints == 4 == len(journey.touchpoints)
        assert [tp.touchpoint_position for tp in journey.touchpoints] == [1, 2, 3, 4]

        conversion_tp = journey.touchpoints[-1]
        assert conversion_tp.is_conversion
        assert conversion_tp.type == TouchpointType.CONVERSION
        assert conversion_tp.touchpoint_id == "1001_conversion"
        assert conversion_tp.attribution_method == "conversion_point"
        assert conversion_tp.confidence == 1000

    def test_first_and_last_flags(self, builder, matches):
        journey = builder.build(make_conversion(), matches)

        assert [tp.is_first_touchpoint for tp in journey.touchpoints] == [True, False, False, False]
        assert [tp.is_last_touchpoint for tp in journey.touchpoints] == [False, False, False, True]

    def test_derived_fields(self, builder, matches):
        journey = builder.build(make_conversion(), matches)

        assert journey.journey_start == CONVERSION_TIME - timedelta(minutes=120)
        assert journey.journey_span_hours == pytest.approx(2.0)
        assert journey.unique_sessions == 2
        assert journey.unique_device_fingerprints == 2
        assert journey.cross_session_journey
        assert journey.cross_device_journey
        assert journey.unique_sources == ["google", "email"]
        assert journey.first_click_source == "google"
        assert journey.last_click_source == "email"
        assert journey.attribution_confidence_avg == pytest.approx((280 + 300 + 300 + 1000) / 4)
        assert journey.journey_state == JourneyState.ATTRIBUTED
        assert journey.reconstruction_method == "enhanced_multi_signal_attribution"

    def test_ids_are_deterministic_for_a_fixed_clock(self, builder, matches):
        first = builder.build(make_conversion(), matches)
        second = builder.build(make_conversion(), list(reversed(matches)))

        assert first.journey_id == f"journey_1001_{epoch_millis(BUILT_AT)}"
        assert first.to_record() == second.to_record()
        assert [tp.touchpoint_id for tp in first.pageview_touchpoints] == [
            "1001_1",
            "1001_2",
            "1001_3",
        ]

    def test_no_matches_gives_conversion_only(self, builder):
        journey = builder.build(make_conversion(source="newsletter"), [])

        assert journey.journey_id == "journey_1001_conversion_only"
        assert journey.total_touchpoints == 1
        assert journey.journey_state == JourneyState.CONVERSION_ONLY
        assert journey.reconstruction_method == "conversion_only"
        assert journey.journey_span_hours == 0
        assert journey.attribution_confidence_avg == 100

        touchpoint = journey.touchpoints[0]
        assert touchpoint.touchpoint_id == "1001_conversion_only"
        assert touchpoint.is_conversion
        assert touchpoint.is_first_touchpoint and touchpoint.is_last_touchpoint
        assert touchpoint.source == "newsletter"
        assert journey.first_click_source == journey.last_click_source == "newsletter"

    def test_conversion_only_source_defaults_to_unknown(self, builder):
        journey = builder.build_conversion_only(make_conversion())

        assert journey.touchpoints[0].source == "unknown"
        assert journey.unique_sessions == 0
        assert not journey.cross_session_journey

    def test_record_round_trips_through_the_model(self, builder, matches):
        journey = builder.build(make_conversion(), matches)
        record = journey.to_record()

        assert record["journey_state"] == "attributed"
        assert record["conversion_timestamp"].startswith("2025-07-20T12:00:00")
        assert type(journey).model_validate(record) == journey
