"""
Tests for merging recovered pageviews and applying strict re-evaluation results
"""

from datetime import timedelta

import pytest

from attribution_worker.domains.attribution.models import (
    AttributionMethod,
    JourneyState,
    MatchConfidence,
    MatchedPageview,
)
from attribution_worker.domains.attribution.services import (
    JourneyBuilder,
    RecoveryReconciler,
    StrictOutcome,
    cleared_conversion,
)
from attribution_worker.shared.helpers.datetime_utils import to_iso

from conftest import CONVERSION_TIME, make_conversion, make_pageview

NOW = CONVERSION_TIME + timedelta(days=1)


def matched(pageview, tier=MatchConfidence.STRONG, method=AttributionMethod.FALLBACK_IP):
    return MatchedPageview(
        pageview=pageview,
        attribution_method=method,
        confidence=240,
        confidence_tier=tier,
        score=240,
        matched_ip=pageview.ip_address,
    )


@pytest.fixture
def builder(config):
    return JourneyBuilder(config, clock=lambda: NOW)


@pytest.fixture
def reconciler(builder):
    return RecoveryReconciler(builder, clock=lambda: NOW)


class TestReconcile:
    def test_conversion_only_journey_gains_recovered_touchpoints(self, builder, reconciler):
        conversion = make_conversion()
        journey = builder.build_conversion_only(conversion)

        updated = reconciler.reconcile(
            journey,
            conversion,
            [matched(make_pageview(20)), matched(make_pageview(50, ip_address="192.0.2.44"))],
        )

        assert updated.journey_id == journey.journey_id
        assert updated.total_touchpoints == 3
        assert updated.journey_state == JourneyState.RECOVERY_FOUND
        assert updated.reconstruction_method == "attribution_recovery_engine"
        assert updated.recovery_attempted
        assert updated.recovery_timestamp == NOW
        assert updated.recovered_pageviews == 2
        assert [tp.touchpoint_id for tp in updated.pageview_touchpoints] == [
            "1001_recovered_1",
            "1001_recovered_2",
        ]
        assert all(
            tp.recovery_method == "enhanced_dual_ip_extraction"
            for tp in updated.pageview_touchpoints
        )
        assert updated.touchpoints[-1].is_conversion

    def test_reconcile_is_idempotent(self, builder, reconciler):
        conversion = make_conversion()
        matches = [matched(make_pageview(20)), matched(make_pageview(50, ip_address="192.0.2.44"))]

        once = reconciler.reconcile(builder.build_conversion_only(conversion), conversion, matches)
        twice = reconciler.reconcile(once, conversion, matches)

        assert twice.total_touchpoints == once.total_touchpoints
        assert [tp.dedupe_key for tp in twice.touchpoints] == [
            tp.dedupe_key for tp in once.touchpoints
        ]
        assert twice.recovered_pageviews == 0

    def test_existing_touchpoints_are_kept(self, builder, reconciler):
        conversion = make_conversion(session_id="s-1")
        original = builder.build(
            conversion,
            [matched(make_pageview(90, session_id="s-1"), MatchConfidence.DEFINITE)],
        )

        updated = reconciler.reconcile(
            original,
            conversion,
            [
                matched(make_pageview(90, session_id="s-1")),
                matched(make_pageview(15, ip_address="192.0.2.44")),
            ],
        )

        assert updated.total_touchpoints == 3
        assert updated.pageview_touchpoints[0].touchpoint_id == "1001_1"
        assert updated.pageview_touchpoints[1].touchpoint_id == "1001_recovered_2"
        assert updated.total_touchpoints >= original.total_touchpoints

    def test_nothing_found_marks_not_found(self, builder, reconciler):
        conversion = make_conversion()
        journey = builder.build_conversion_only(conversion)

        updated = reconciler.reconcile(journey, conversion, [])

        assert updated.journey_state == JourneyState.RECOVERY_NOT_FOUND
        assert updated.recovery_attempted
        assert updated.recovered_pageviews == 0
        assert updated.total_touchpoints == 1


class TestStrictResults:
    def test_outcome_for_match(self):
        pageview = make_pageview(10)

        assert StrictOutcome.for_match(None) == StrictOutcome.ATTRIBUTION_REMOVED
        assert (
            StrictOutcome.for_match(matched(pageview, MatchConfidence.DEFINITE))
            == StrictOutcome.ATTRIBUTION_UPGRADED
        )
        assert (
            StrictOutcome.for_match(matched(pageview, MatchConfidence.POSSIBLE))
            == StrictOutcome.ATTRIBUTION_KEPT
        )

    def test_removal_clears_attribution_and_keeps_audit(self, reconciler):
        record = {
            "order_id": "1001",
            "landing_page": "/sale",
            "source": "facebook",
            "utm_campaign": "summer",
            "utm_medium": "paid_social",
            "referrer_url": "https://facebook.com/",
            "attribution_method": "fallback_ip",
            "attributed_pageview_timestamp": "2025-07-20T11:40:00Z",
            "attribution_found": True,
            "attribution_improvement": {"confidence": "POSSIBLE", "priority_level": 8},
        }

        updated = reconciler.apply_strict_result(record, StrictOutcome.ATTRIBUTION_REMOVED)

        assert updated["attribution_found"] is False
        assert updated["landing_page"] is None
        assert updated["source"] is None
        assert updated["utm_campaign"] is None
        assert updated["removed_attribution"] == {
            "landing_page": "/sale",
            "source": "facebook",
            "utm_campaign": "summer",
            "utm_medium": "paid_social",
            "referrer_url": "https://facebook.com/",
            "attribution_method": "fallback_ip",
            "attributed_pageview_timestamp": "2025-07-20T11:40:00Z",
            "confidence": "POSSIBLE",
            "removed_at": to_iso(NOW),
        }
        assert updated["attributed_pageview_timestamp"] is None
        strict = updated["attribution_improvement"]["strict_reprocessing"]
        assert strict["result"] == "attribution_removed"
        assert strict["reason"] == "no_city_match_found"
        assert updated["attribution_improvement"]["priority_level"] == 8
        assert record["landing_page"] == "/sale"

    def test_upgrade_rewrites_from_best_match(self, reconciler):
        record = {
            "order_id": "1001",
            "attribution_improvement": {"confidence": "POSSIBLE"},
        }
        best = matched(
            make_pageview(12, landing_page="/new", source=None), MatchConfidence.DEFINITE
        )

        updated = reconciler.apply_strict_result(
            record, StrictOutcome.ATTRIBUTION_UPGRADED, best, CONVERSION_TIME
        )

        assert updated["attribution_found"] is True
        assert updated["landing_page"] == "/new"
        assert updated["source"] == "strict_reprocessed"
        improvement = updated["attribution_improvement"]
        assert improvement["confidence"] == "DEFINITE"
        assert improvement["strict_reprocessing"]["previous_confidence"] == "POSSIBLE"
        assert improvement["strict_reprocessing"]["time_difference_minutes"] == 12.0

    def test_journey_reduced_on_removal(self, builder, reconciler):
        conversion = make_conversion(session_id="s-1", source="facebook")
        journey = builder.build(
            conversion,
            [
                matched(make_pageview(40, session_id="s-1", landing_page="/sale")),
                matched(make_pageview(20, session_id="s-1", source="email")),
            ],
        )

        reduced = reconciler.remove_journey_attribution(
            journey, cleared_conversion(conversion), "POSSIBLE"
        )

        assert reduced.journey_id == journey.journey_id
        assert reduced.total_touchpoints == 1
        assert reduced.journey_state == JourneyState.ATTRIBUTION_REMOVED
        assert reduced.touchpoints[0].source == "unknown"
        audit = reduced.removed_attribution
        assert audit["touchpoints_removed"] == 2
        assert audit["landing_page"] == "/sale"
        assert audit["sources"] == ["google", "email"]
        assert audit["confidence"] == "POSSIBLE"
