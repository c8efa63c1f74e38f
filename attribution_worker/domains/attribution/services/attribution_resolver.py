"""
Attribution Resolver

Finds the pageviews that belong to a conversion inside a lookback window.
Candidates come either from the store's reverse indexes (session, device,
IP, screen, webgl pointers) or from an explicit candidate list, and every
candidate is scored by the IdentityMatcher.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ....core.config.settings import AttributionSettings, settings
from ....core.logging import get_logger
from ....shared.constants.redis import (
    ATTRIBUTION_FINGERPRINT_PREFIX,
    ATTRIBUTION_SCREEN_PREFIX,
    ATTRIBUTION_SESSION_PREFIX,
    ATTRIBUTION_WEBGL_PREFIX,
)
from ..models import (
    AttributionMethod,
    Conversion,
    GeoMode,
    MatchedPageview,
    MatchResult,
    Pageview,
)
from .identity_matcher import IdentityMatcher

logger = get_logger(__name__)


def window_bounds(conversion: Conversion, window_hours: float) -> Tuple[datetime, datetime]:
    """Inclusive ``[conversion - window, conversion]`` bounds"""
    return conversion.timestamp - timedelta(hours=window_hours), conversion.timestamp


def in_window(pageview: Pageview, start: datetime, end: datetime) -> bool:
    return start <= pageview.timestamp <= end


def dedupe_matches(matches: Iterable[MatchedPageview]) -> List[MatchedPageview]:
    """Drop the same visit found through more than one signal; first occurrence wins"""
    seen = set()
    unique = []
    for match in matches:
        if match.dedupe_key in seen:
            continue
        seen.add(match.dedupe_key)
        unique.append(match)
    return unique


def rank_matches(matches: Iterable[MatchedPageview]) -> List[MatchedPageview]:
    """Strongest tier first, then the visit closest to the conversion"""
    return sorted(
        matches,
        key=lambda match: (match.confidence_tier.rank, match.pageview.timestamp),
        reverse=True,
    )


class AttributionResolver:
    """Resolves a conversion to its attributed pageviews"""

    def __init__(
        self,
        pageview_repository,
        geo_service=None,
        matcher: Optional[IdentityMatcher] = None,
        config: Optional[AttributionSettings] = None,
    ):
        self.pageviews = pageview_repository
        self.geo_service = geo_service
        self.config = config or settings.attribution
        self.matcher = matcher or IdentityMatcher(self.config)

    async def resolve(
        self,
        conversion: Conversion,
        window_hours: Optional[float] = None,
        candidates: Optional[Sequence[Pageview]] = None,
        geo_mode: GeoMode = GeoMode.STANDARD,
        best: bool = False,
    ) -> List[MatchedPageview]:
        """
        Resolve the pageviews attributed to ``conversion``.

        Args:
            window_hours: lookback window; defaults to the recovery window
            candidates: score these pageviews instead of reading the indexes
            geo_mode: geo policy for candidates linked only by geography
            best: return only the top-ranked match

        Returns:
            All matches in chronological order, or a single-element list with
            the best match when ``best`` is set. Empty when nothing matched.
        """
        window_hours = window_hours or self.config.RECOVERY_WINDOW_HOURS
        start, end = window_bounds(conversion, window_hours)

        if candidates is not None:
            in_range = [pv for pv in candidates if in_window(pv, start, end)]
            matches = await self._score_candidates(conversion, in_range, geo_mode)
        else:
            matches = await self._retrieve_indexed(conversion, start, end)

        matches = dedupe_matches(matches)

        if best:
            return rank_matches(matches)[:1]
        return sorted(matches, key=lambda match: match.pageview.timestamp)

    def _to_matched(self, pageview: Pageview, result: MatchResult) -> MatchedPageview:
        return MatchedPageview(
            pageview=pageview,
            attribution_method=result.method,
            confidence=result.points,
            confidence_tier=result.confidence,
            score=result.score,
            matched_ip=result.matched_ip,
        )

    def _score_indexed(
        self,
        conversion: Conversion,
        pageviews: Iterable[Pageview],
        via: Optional[AttributionMethod],
        matched_ip: Optional[str] = None,
    ) -> List[MatchedPageview]:
        matches = []
        for pageview in pageviews:
            result = self.matcher.score(conversion, pageview, via=via, matched_ip=matched_ip)
            if result.is_match:
                matches.append(self._to_matched(pageview, result))
        return matches

    async def _retrieve_indexed(
        self, conversion: Conversion, start: datetime, end: datetime
    ) -> List[MatchedPageview]:
        """Walk the retrieval paths in order and stop at the first one with in-window hits"""
        pointer_paths: List[Tuple[Optional[str], str, AttributionMethod]] = [
            (conversion.session_id, ATTRIBUTION_SESSION_PREFIX, AttributionMethod.SESSION_ID),
            (
                conversion.device_signature,
                ATTRIBUTION_FINGERPRINT_PREFIX,
                AttributionMethod.DEVICE_SIGNATURE,
            ),
        ]
        trailing_paths = [
            (conversion.screen_value, ATTRIBUTION_SCREEN_PREFIX, AttributionMethod.SCREEN_SIGNATURE),
            (conversion.gpu_signature, ATTRIBUTION_WEBGL_PREFIX, AttributionMethod.WEBGL_SIGNATURE),
        ]

        for value, prefix, method in pointer_paths:
            matches = await self._pointer_path(conversion, value, prefix, method, start, end)
            if matches:
                return matches

        for ip in conversion.ip_addresses:
            found = await self.pageviews.find_by_ip(ip)
            hits = [pv for pv in found if in_window(pv, start, end)]
            if not hits:
                continue
            matches = self._score_indexed(
                conversion, hits, via=self.matcher.ip_method(conversion, ip), matched_ip=ip
            )
            if matches:
                logger.debug(
                    "Resolved through IP index",
                    order_id=conversion.order_id,
                    ip=ip,
                    matches=len(matches),
                )
                return matches

        for value, prefix, method in trailing_paths:
            matches = await self._pointer_path(conversion, value, prefix, method, start, end)
            if matches:
                return matches

        return []

    async def _pointer_path(
        self,
        conversion: Conversion,
        value: Optional[str],
        prefix: str,
        method: AttributionMethod,
        start: datetime,
        end: datetime,
    ) -> List[MatchedPageview]:
        if not value:
            return []
        found = await self.pageviews.find_by_pointer(prefix, value)
        hits = [pv for pv in found if in_window(pv, start, end)]
        return self._score_indexed(conversion, hits, via=method)

    async def _score_candidates(
        self,
        conversion: Conversion,
        candidates: Sequence[Pageview],
        geo_mode: GeoMode,
    ) -> List[MatchedPageview]:
        """
        Score an explicit candidate list.

        Identity signals are tried first; geo records are only fetched for the
        candidates that identity could not link.
        """
        matches: List[MatchedPageview] = []
        unresolved: List[Pageview] = []

        for pageview in candidates:
            result = self.matcher.score(conversion, pageview)
            if result.is_match:
                matches.append(self._to_matched(pageview, result))
            else:
                unresolved.append(pageview)

        if not unresolved or self.geo_service is None:
            return matches

        conversion_ip = conversion.primary_ip or next(iter(conversion.ip_addresses), None)
        if not conversion_ip:
            return matches

        geo_records = await self.geo_service.resolve_many(
            [conversion_ip] + [pv.ip_address for pv in unresolved]
        )
        conversion_geo = geo_records.get(conversion_ip)

        outcomes: Dict[str, int] = {}
        for pageview in unresolved:
            pageview_geo = geo_records.get(pageview.ip_address) if pageview.ip_address else None
            result = self.matcher.score(
                conversion,
                pageview,
                conversion_geo=conversion_geo,
                pageview_geo=pageview_geo,
                mode=geo_mode,
            )
            outcomes[result.confidence.value] = outcomes.get(result.confidence.value, 0) + 1
            if result.is_match:
                matches.append(self._to_matched(pageview, result))

        logger.debug(
            "Scored geo candidates",
            order_id=conversion.order_id,
            mode=geo_mode.value,
            candidates=len(unresolved),
            outcomes=outcomes,
        )
        return matches
