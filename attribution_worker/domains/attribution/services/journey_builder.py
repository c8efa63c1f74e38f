"""
Journey Builder

Turns the resolver's matches into an ordered journey ending in the
conversion, with the derived summary fields computed from the touchpoints.
"""

from datetime import datetime
from typing import Callable, List, Optional, Sequence

from ....core.config.settings import AttributionSettings, settings
from ....shared.constants.attribution import (
    CONVERSION_ONLY_METHOD,
    CONVERSION_POINT_METHOD,
    RECONSTRUCTION_CONVERSION_ONLY,
    RECONSTRUCTION_MULTI_SIGNAL,
    UNKNOWN_SOURCE,
)
from ....shared.helpers.datetime_utils import epoch_millis, now_utc
from ..models import (
    Conversion,
    Journey,
    JourneyState,
    MatchedPageview,
    Touchpoint,
    TouchpointType,
)


def _distinct(values) -> List[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


class JourneyBuilder:
    """Builds journeys from matched pageviews"""

    def __init__(
        self,
        config: Optional[AttributionSettings] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.config = config or settings.attribution
        self.clock = clock

    def pageview_touchpoint(
        self,
        order_id: str,
        match: MatchedPageview,
        position: int = 0,
        touchpoint_id: Optional[str] = None,
        recovery_method: Optional[str] = None,
    ) -> Touchpoint:
        pageview = match.pageview
        return Touchpoint(
            touchpoint_id=touchpoint_id or f"{order_id}_{position}",
            timestamp=pageview.timestamp,
            type=TouchpointType.PAGEVIEW,
            landing_page=pageview.landing_page,
            source=pageview.source,
            medium=pageview.medium,
            campaign=pageview.campaign,
            content=pageview.content,
            term=pageview.term,
            referrer_url=pageview.referrer_url,
            attribution_method=match.attribution_method.value,
            confidence=match.confidence,
            matched_ip=match.matched_ip,
            recovery_method=recovery_method,
            ip_address=pageview.ip_address,
            session_id=pageview.session_id,
            canvas_fingerprint=pageview.canvas_fingerprint,
            screen_resolution=pageview.screen_resolution,
            user_agent=pageview.user_agent,
            touchpoint_position=position,
        )

    def conversion_touchpoint(self, conversion: Conversion) -> Touchpoint:
        return Touchpoint(
            touchpoint_id=f"{conversion.order_id}_conversion",
            timestamp=conversion.timestamp,
            type=TouchpointType.CONVERSION,
            order_id=conversion.order_id,
            order_total=conversion.order_total,
            email=conversion.email,
            attribution_method=CONVERSION_POINT_METHOD,
            confidence=self.config.CONVERSION_CONFIDENCE,
            is_conversion=True,
            is_last_touchpoint=True,
        )

    def assemble(
        self,
        conversion: Conversion,
        pageview_touchpoints: Sequence[Touchpoint],
        journey_id: str,
        reconstruction_method: str = RECONSTRUCTION_MULTI_SIGNAL,
        journey_state: JourneyState = JourneyState.ATTRIBUTED,
        created_at: Optional[datetime] = None,
        conversion_touchpoint: Optional[Touchpoint] = None,
    ) -> Journey:
        """
        Order the pageview touchpoints, append the conversion and derive the
        journey summary. Positions and first/last flags are reassigned here.
        """
        ordered = sorted(pageview_touchpoints, key=lambda tp: tp.timestamp)
        touchpoints: List[Touchpoint] = []
        for index, touchpoint in enumerate(ordered):
            touchpoints.append(
                touchpoint.model_copy(
                    update={
                        "touchpoint_position": index + 1,
                        "is_first_touchpoint": index == 0,
                        "is_last_touchpoint": False,
                    }
                )
            )

        conversion_tp = conversion_touchpoint or self.conversion_touchpoint(conversion)
        touchpoints.append(
            conversion_tp.model_copy(
                update={
                    "touchpoint_position": len(touchpoints) + 1,
                    "is_first_touchpoint": not touchpoints,
                    "is_last_touchpoint": True,
                }
            )
        )

        first = touchpoints[0]
        sessions = _distinct(tp.session_id for tp in touchpoints)
        devices = _distinct(tp.canvas_fingerprint for tp in touchpoints)
        last_click = touchpoints[-2].source if len(touchpoints) > 1 else None

        return Journey(
            journey_id=journey_id,
            conversion_order_id=conversion.order_id,
            customer_email=conversion.email,
            conversion_value=conversion.order_total,
            conversion_timestamp=conversion.timestamp,
            journey_start=first.timestamp,
            journey_end=conversion.timestamp,
            journey_span_hours=(conversion.timestamp - first.timestamp).total_seconds() / 3600,
            total_touchpoints=len(touchpoints),
            touchpoints=touchpoints,
            unique_sessions=len(sessions),
            unique_device_fingerprints=len(devices),
            cross_session_journey=len(sessions) > 1,
            cross_device_journey=len(devices) > 1,
            unique_sources=_distinct(tp.source for tp in touchpoints),
            first_click_source=first.source,
            last_click_source=last_click or first.source,
            attribution_confidence_avg=sum(tp.confidence for tp in touchpoints) / len(touchpoints),
            reconstruction_method=reconstruction_method,
            journey_state=journey_state,
            created_at=created_at or self.clock(),
        )

    def build(self, conversion: Conversion, matches: Sequence[MatchedPageview]) -> Journey:
        """Journey for a conversion; conversion-only when nothing matched"""
        if not matches:
            return self.build_conversion_only(conversion)

        ordered = sorted(matches, key=lambda match: match.pageview.timestamp)
        touchpoints = [
            self.pageview_touchpoint(conversion.order_id, match, index + 1)
            for index, match in enumerate(ordered)
        ]
        created_at = self.clock()
        return self.assemble(
            conversion,
            touchpoints,
            journey_id=f"journey_{conversion.order_id}_{epoch_millis(created_at)}",
            created_at=created_at,
        )

    def build_conversion_only(self, conversion: Conversion) -> Journey:
        source = conversion.source or UNKNOWN_SOURCE
        touchpoint = Touchpoint(
            touchpoint_id=f"{conversion.order_id}_conversion_only",
            timestamp=conversion.timestamp,
            type=TouchpointType.CONVERSION,
            order_id=conversion.order_id,
            order_total=conversion.order_total,
            email=conversion.email,
            source=source,
            attribution_method=CONVERSION_ONLY_METHOD,
            confidence=self.config.CONVERSION_ONLY_CONFIDENCE,
            is_conversion=True,
        )
        return self.assemble(
            conversion,
            [],
            journey_id=f"journey_{conversion.order_id}_conversion_only",
            reconstruction_method=RECONSTRUCTION_CONVERSION_ONLY,
            journey_state=JourneyState.CONVERSION_ONLY,
            conversion_touchpoint=touchpoint,
        )
