"""
Identity Matcher

Decides whether a pageview and a conversion belong to the same person and
how confident that decision is. Pure and synchronous: callers resolve geo
records beforehand.
"""

import re
from typing import Optional

from ....core.config.settings import AttributionSettings, settings
from ....shared.constants.attribution import LOOKUP_FAILED, UNKNOWN
from ..models import (
    AttributionMethod,
    Conversion,
    GeoComparison,
    GeoMode,
    GeoRecord,
    MatchConfidence,
    MatchResult,
    Pageview,
)

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_ASN = re.compile(r"AS(\d+)", re.IGNORECASE)
_PLACEHOLDERS = {"", UNKNOWN.lower(), LOOKUP_FAILED.lower()}


def _is_known(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() not in _PLACEHOLDERS


def normalize_isp(isp: str) -> str:
    return _NON_ALNUM.sub("", isp.lower())


def compare_isps(isp_a: Optional[str], isp_b: Optional[str]) -> bool:
    """
    Loose ISP equality.

    Matches on normalized equality, containment either way, or a shared
    ``AS<number>``. Unknown or empty values never match.
    """
    if not _is_known(isp_a) or not _is_known(isp_b):
        return False

    norm_a, norm_b = normalize_isp(isp_a), normalize_isp(isp_b)
    if norm_a and norm_b and (norm_a == norm_b or norm_a in norm_b or norm_b in norm_a):
        return True

    asn_a, asn_b = _ASN.search(isp_a), _ASN.search(isp_b)
    return bool(asn_a and asn_b and asn_a.group(1) == asn_b.group(1))


def _same_place(value_a: Optional[str], value_b: Optional[str]) -> bool:
    if not _is_known(value_a) or not _is_known(value_b):
        return False
    return value_a.strip().lower() == value_b.strip().lower()


def compare_geo(
    geo_a: GeoRecord,
    geo_b: GeoRecord,
    mode: GeoMode = GeoMode.STANDARD,
    config: Optional[AttributionSettings] = None,
) -> GeoComparison:
    """
    Score two geo records: 3 x city + 2 x region + 1 x country + 2 x ISP.

    Standard mode accepts a score >= GEO_MATCH_THRESHOLD or a city match on
    its own. Strict mode requires the city; once it matches the result is
    never weaker than POSSIBLE.
    """
    config = config or settings.attribution

    if geo_a.is_lookup_failed or geo_b.is_lookup_failed:
        return GeoComparison(is_match=False, confidence=MatchConfidence.LOOKUP_FAILED)

    city = _same_place(geo_a.city, geo_b.city)
    region = _same_place(geo_a.region, geo_b.region)
    country = _same_place(geo_a.country, geo_b.country)
    isp = compare_isps(geo_a.isp, geo_b.isp)
    score = 3 * city + 2 * region + 1 * country + 2 * isp

    fields = dict(
        score=score,
        city_match=city,
        region_match=region,
        country_match=country,
        isp_match=isp,
    )

    if mode == GeoMode.STRICT and not city:
        return GeoComparison(
            is_match=False, confidence=MatchConfidence.NO_CITY_MATCH, **fields
        )

    if score < config.GEO_MATCH_THRESHOLD and not city:
        return GeoComparison(is_match=False, confidence=MatchConfidence.NO_MATCH, **fields)

    if score >= config.GEO_DEFINITE_THRESHOLD:
        confidence = MatchConfidence.DEFINITE
    elif score >= config.GEO_STRONG_THRESHOLD:
        confidence = MatchConfidence.STRONG
    else:
        confidence = MatchConfidence.POSSIBLE

    return GeoComparison(is_match=True, confidence=confidence, **fields)


class IdentityMatcher:
    """Scores a conversion against a pageview using the strongest available signal"""

    # Reverse-index paths that identify a pageview without further comparison
    POINTER_METHODS = (
        AttributionMethod.SESSION_ID,
        AttributionMethod.DEVICE_SIGNATURE,
        AttributionMethod.SCREEN_SIGNATURE,
        AttributionMethod.WEBGL_SIGNATURE,
    )

    def __init__(self, config: Optional[AttributionSettings] = None):
        self.config = config or settings.attribution

    def points_for(self, method: AttributionMethod) -> int:
        config = self.config
        return {
            AttributionMethod.SESSION_ID: config.SESSION_MATCH_CONFIDENCE,
            AttributionMethod.DEVICE_FINGERPRINT: config.FINGERPRINT_MATCH_CONFIDENCE,
            AttributionMethod.PRIMARY_IP: config.PRIMARY_IP_CONFIDENCE,
            AttributionMethod.CONVERSION_IP: config.CONVERSION_IP_CONFIDENCE,
            AttributionMethod.FALLBACK_IP: config.FALLBACK_IP_CONFIDENCE,
            AttributionMethod.DEVICE_SIGNATURE: config.DEVICE_SIGNATURE_CONFIDENCE,
            AttributionMethod.SCREEN_SIGNATURE: config.SCREEN_SIGNATURE_CONFIDENCE,
            AttributionMethod.WEBGL_SIGNATURE: config.WEBGL_SIGNATURE_CONFIDENCE,
            AttributionMethod.GEOGRAPHIC: config.GEOGRAPHIC_CONFIDENCE,
        }[method]

    def tier_for_points(self, points: int) -> MatchConfidence:
        if points >= self.config.DEFINITE_POINTS_THRESHOLD:
            return MatchConfidence.DEFINITE
        if points >= self.config.STRONG_POINTS_THRESHOLD:
            return MatchConfidence.STRONG
        return MatchConfidence.POSSIBLE

    def ip_method(self, conversion: Conversion, ip: Optional[str]) -> Optional[AttributionMethod]:
        """Label an IP by the conversion field it came from"""
        if not ip:
            return None
        if ip == conversion.primary_ip:
            return AttributionMethod.PRIMARY_IP
        if ip == conversion.conversion_ip:
            return AttributionMethod.CONVERSION_IP
        if ip in conversion.ip_addresses:
            return AttributionMethod.FALLBACK_IP
        return None

    def compare_geo(
        self, geo_a: GeoRecord, geo_b: GeoRecord, mode: GeoMode = GeoMode.STANDARD
    ) -> GeoComparison:
        return compare_geo(geo_a, geo_b, mode, self.config)

    def _identified(
        self, method: AttributionMethod, matched_ip: Optional[str] = None
    ) -> MatchResult:
        points = self.points_for(method)
        return MatchResult(
            is_match=True,
            confidence=self.tier_for_points(points),
            score=points,
            points=points,
            method=method,
            matched_ip=matched_ip,
        )

    def match_exact(self, conversion: Conversion, pageview: Pageview) -> Optional[MatchResult]:
        """Session id or device fingerprint equality, the two ceiling-strength signals"""
        if conversion.session_id and conversion.session_id == pageview.session_id:
            return self._identified(AttributionMethod.SESSION_ID)
        if (
            conversion.device_signature
            and conversion.device_signature == pageview.canvas_fingerprint
        ):
            return self._identified(AttributionMethod.DEVICE_FINGERPRINT)
        return None

    def score(
        self,
        conversion: Conversion,
        pageview: Pageview,
        via: Optional[AttributionMethod] = None,
        matched_ip: Optional[str] = None,
        conversion_geo: Optional[GeoRecord] = None,
        pageview_geo: Optional[GeoRecord] = None,
        mode: GeoMode = GeoMode.STANDARD,
    ) -> MatchResult:
        """
        Score one conversion/pageview pair.

        Args:
            via: reverse-index path the pageview was retrieved through, if any
            matched_ip: the conversion IP whose index produced the pageview
            conversion_geo, pageview_geo: geo records for the geographic fallback
            mode: geo policy used when only geography links the pair

        Evidence is taken in order of strength: exact session/fingerprint,
        the retrieval pointer, a shared IP, then geography.
        """
        exact = self.match_exact(conversion, pageview)
        if exact is not None:
            return exact

        if via in self.POINTER_METHODS:
            return self._identified(via)

        ip = matched_ip if via is not None and via.is_ip_match else pageview.ip_address
        ip_method = self.ip_method(conversion, ip)
        if ip_method is not None:
            return self._identified(ip_method, matched_ip=ip)

        if conversion_geo is None or pageview_geo is None:
            return MatchResult.no_match()

        geo = self.compare_geo(conversion_geo, pageview_geo, mode)
        if not geo.is_match:
            return MatchResult.no_match(geo.confidence, geo)

        return MatchResult(
            is_match=True,
            confidence=geo.confidence,
            score=geo.score,
            points=self.points_for(AttributionMethod.GEOGRAPHIC),
            method=AttributionMethod.GEOGRAPHIC,
            matched_ip=pageview.ip_address,
            geo=geo,
        )
