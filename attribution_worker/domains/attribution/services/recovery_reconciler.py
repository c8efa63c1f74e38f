"""
Recovery Reconciler

Merges newly resolved pageviews into a stored journey without duplicating
touchpoints, and applies the strict re-evaluation outcome (upgrade, keep or
remove) to conversion and journey records.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from ....core.logging import get_logger
from ....shared.constants.attribution import (
    ATTRIBUTION_FIELDS_TO_CLEAR,
    RECONSTRUCTION_RECOVERY,
    RECOVERY_METHOD_DUAL_IP,
    STRICT_METHOD,
    STRICT_REMOVAL_REASON,
)
from ....shared.helpers.datetime_utils import now_utc, to_iso
from ..models import Conversion, Journey, JourneyState, MatchConfidence, MatchedPageview
from .journey_builder import JourneyBuilder

logger = get_logger(__name__)


class StrictOutcome(str, Enum):
    """Result of re-scoring a POSSIBLE attribution under strict geo rules"""

    ATTRIBUTION_UPGRADED = "ATTRIBUTION_UPGRADED"
    ATTRIBUTION_KEPT = "ATTRIBUTION_KEPT"
    ATTRIBUTION_REMOVED = "ATTRIBUTION_REMOVED"

    @classmethod
    def for_match(cls, match: Optional[MatchedPageview]) -> "StrictOutcome":
        if match is None:
            return cls.ATTRIBUTION_REMOVED
        if match.confidence_tier in (MatchConfidence.DEFINITE, MatchConfidence.STRONG):
            return cls.ATTRIBUTION_UPGRADED
        return cls.ATTRIBUTION_KEPT


class RecoveryReconciler:
    """Applies recovery and strict re-evaluation results to stored records"""

    def __init__(
        self,
        builder: Optional[JourneyBuilder] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.builder = builder or JourneyBuilder(clock=clock)
        self.clock = clock

    def reconcile(
        self,
        journey: Journey,
        conversion: Conversion,
        matches: Sequence[MatchedPageview],
    ) -> Journey:
        """
        Union the journey's existing pageview touchpoints with the new matches.

        A match whose ``timestamp + (session_id or ip_address)`` is already in
        the journey is dropped, so reconciling the same matches twice adds
        nothing the second time. The journey id, and with it the storage key,
        never changes.
        """
        existing = journey.pageview_touchpoints
        seen = {touchpoint.dedupe_key for touchpoint in existing}

        added = []
        for match in sorted(matches, key=lambda item: item.pageview.timestamp):
            if match.dedupe_key in seen:
                continue
            seen.add(match.dedupe_key)
            position = len(existing) + len(added) + 1
            added.append(
                self.builder.pageview_touchpoint(
                    conversion.order_id,
                    match,
                    position,
                    touchpoint_id=f"{conversion.order_id}_recovered_{position}",
                    recovery_method=RECOVERY_METHOD_DUAL_IP,
                )
            )

        if not existing and not added:
            return self.mark_not_found(journey)

        now = self.clock()
        rebuilt = self.builder.assemble(
            conversion,
            list(existing) + added,
            journey_id=journey.journey_id,
            reconstruction_method=RECONSTRUCTION_RECOVERY,
            journey_state=JourneyState.RECOVERY_FOUND,
            created_at=journey.created_at or now,
        )

        logger.info(
            "Journey reconciled",
            order_id=conversion.order_id,
            journey_id=journey.journey_id,
            existing_touchpoints=len(existing),
            recovered_pageviews=len(added),
        )

        return rebuilt.model_copy(
            update={
                "recovery_attempted": True,
                "recovery_timestamp": now,
                "recovery_method": RECOVERY_METHOD_DUAL_IP,
                "recovered_pageviews": len(added),
                "removed_attribution": journey.removed_attribution,
            }
        )

    def mark_not_found(self, journey: Journey) -> Journey:
        """Stamp a journey whose recovery found nothing so it is not retried"""
        return journey.model_copy(
            update={
                "recovery_attempted": True,
                "recovery_timestamp": self.clock(),
                "recovery_method": RECOVERY_METHOD_DUAL_IP,
                "recovered_pageviews": 0,
                "journey_state": JourneyState.RECOVERY_NOT_FOUND,
            }
        )

    def remove_journey_attribution(
        self,
        journey: Journey,
        conversion: Conversion,
        previous_confidence: Optional[str],
    ) -> Journey:
        """
        Reduce a journey to its conversion, keeping an audit of what was removed.

        This is the only transition that lowers a journey's touchpoint count.
        """
        removed = journey.pageview_touchpoints
        now = self.clock()

        reduced = self.builder.build_conversion_only(conversion)

        logger.warning(
            "Removing journey attribution",
            order_id=conversion.order_id,
            journey_id=journey.journey_id,
            touchpoints_removed=len(removed),
            previous_confidence=previous_confidence,
        )

        return reduced.model_copy(
            update={
                "journey_id": journey.journey_id,
                "created_at": journey.created_at or reduced.created_at,
                "journey_state": JourneyState.ATTRIBUTION_REMOVED,
                "recovery_attempted": journey.recovery_attempted,
                "recovery_timestamp": journey.recovery_timestamp,
                "recovery_method": journey.recovery_method,
                "recovered_pageviews": journey.recovered_pageviews,
                "removed_attribution": {
                    "landing_page": removed[0].landing_page if removed else None,
                    "sources": [tp.source for tp in removed if tp.source],
                    "touchpoints_removed": len(removed),
                    "confidence": previous_confidence,
                    "removed_at": to_iso(now),
                    "reason": STRICT_REMOVAL_REASON,
                },
            }
        )

    def apply_strict_result(
        self,
        record: Dict[str, Any],
        outcome: StrictOutcome,
        match: Optional[MatchedPageview] = None,
        conversion_timestamp: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        New full conversion record reflecting a strict re-evaluation.

        Removal clears the attribution fields and keeps what was removed under
        ``removed_attribution``; upgrade and keep rewrite the attribution from
        the strict best match.
        """
        now = to_iso(self.clock())
        improvement = dict(record.get("attribution_improvement") or {})
        previous_confidence = improvement.get("confidence") or "UNKNOWN"
        updated = dict(record)

        if outcome == StrictOutcome.ATTRIBUTION_REMOVED or match is None:
            removed = {field: record.get(field) for field in ATTRIBUTION_FIELDS_TO_CLEAR}
            removed.update(
                {
                    "attribution_method": record.get("attribution_method"),
                    "attributed_pageview_timestamp": record.get("attributed_pageview_timestamp"),
                    "confidence": improvement.get("confidence"),
                    "removed_at": now,
                }
            )
            updated["removed_attribution"] = removed
            for field in ATTRIBUTION_FIELDS_TO_CLEAR:
                updated[field] = None
            updated["attribution_found"] = False
            updated["attributed_pageview_timestamp"] = None
            improvement["strict_reprocessing"] = {
                "method": STRICT_METHOD,
                "result": StrictOutcome.ATTRIBUTION_REMOVED.value.lower(),
                "reason": STRICT_REMOVAL_REASON,
                "reprocessed_at": now,
                "previous_confidence": previous_confidence,
            }
            updated["attribution_improvement"] = improvement
            return updated

        pageview = match.pageview
        time_difference_minutes = None
        if conversion_timestamp is not None:
            time_difference_minutes = round(
                (conversion_timestamp - pageview.timestamp).total_seconds() / 60, 1
            )

        updated.update(
            {
                "attribution_found": True,
                "landing_page": pageview.landing_page,
                "source": pageview.source or "strict_reprocessed",
                "utm_campaign": pageview.campaign or record.get("utm_campaign"),
                "utm_medium": pageview.medium or record.get("utm_medium"),
                "referrer_url": pageview.referrer_url or record.get("referrer_url"),
                "attributed_pageview_timestamp": to_iso(pageview.timestamp),
            }
        )
        improvement["confidence"] = match.confidence_tier.value
        improvement["strict_reprocessing"] = {
            "method": STRICT_METHOD,
            "result": outcome.value.lower(),
            "previous_confidence": previous_confidence,
            "new_confidence": match.confidence_tier.value,
            "score": match.score,
            "time_difference_minutes": time_difference_minutes,
            "reprocessed_at": now,
            "pageview_ip": pageview.ip_address,
            "pageview_timestamp": to_iso(pageview.timestamp),
        }
        updated["attribution_improvement"] = improvement
        return updated


def cleared_conversion(conversion: Conversion) -> Conversion:
    """The conversion as it reads after its attribution was removed"""
    cleared: Dict[str, Any] = {field: None for field in ATTRIBUTION_FIELDS_TO_CLEAR}
    cleared["attribution_found"] = False
    return conversion.model_copy(update=cleared)

