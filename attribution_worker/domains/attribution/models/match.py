"""
Identity match results
"""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel

from .pageview import Pageview


class MatchConfidence(str, Enum):
    """Confidence label attached to a match outcome"""

    DEFINITE = "DEFINITE"
    STRONG = "STRONG"
    POSSIBLE = "POSSIBLE"
    LOOKUP_FAILED = "LOOKUP_FAILED"
    NO_CITY_MATCH = "NO_CITY_MATCH"
    NO_MATCH = "NO_MATCH"

    @property
    def rank(self) -> int:
        return _TIER_RANK.get(self, 0)


_TIER_RANK = {
    MatchConfidence.DEFINITE: 3,
    MatchConfidence.STRONG: 2,
    MatchConfidence.POSSIBLE: 1,
}


class GeoMode(str, Enum):
    """How geographic evidence is weighed"""

    STANDARD = "standard"
    STRICT = "strict"


class AttributionMethod(str, Enum):
    """Signal through which a pageview was tied to a conversion"""

    SESSION_ID = "session_id_match"
    DEVICE_FINGERPRINT = "device_fingerprint_match"
    PRIMARY_IP = "primary_ip_match"
    CONVERSION_IP = "conversion_ip_match"
    FALLBACK_IP = "fallback_ip_match"
    DEVICE_SIGNATURE = "device_signature_match"
    SCREEN_SIGNATURE = "screen_signature_match"
    WEBGL_SIGNATURE = "webgl_signature_match"
    GEOGRAPHIC = "geographic_match"

    @property
    def priority_level(self) -> int:
        """Lower is better. Used to decide whether a new attribution improves an old one."""
        return PRIORITY_LEVELS[self]

    @property
    def is_ip_match(self) -> bool:
        return self in (
            AttributionMethod.PRIMARY_IP,
            AttributionMethod.CONVERSION_IP,
            AttributionMethod.FALLBACK_IP,
        )


PRIORITY_LEVELS: Dict[AttributionMethod, int] = {
    AttributionMethod.SESSION_ID: 1,
    AttributionMethod.DEVICE_FINGERPRINT: 1,
    AttributionMethod.PRIMARY_IP: 2,
    AttributionMethod.CONVERSION_IP: 3,
    AttributionMethod.FALLBACK_IP: 4,
    AttributionMethod.DEVICE_SIGNATURE: 5,
    AttributionMethod.SCREEN_SIGNATURE: 6,
    AttributionMethod.WEBGL_SIGNATURE: 7,
    AttributionMethod.GEOGRAPHIC: 8,
}

# Priority assumed for a conversion that has never been improved
NO_PRIORITY_LEVEL = 9


class GeoComparison(BaseModel):
    """Field-by-field outcome of comparing two geo records"""

    is_match: bool
    confidence: MatchConfidence
    score: int = 0
    city_match: bool = False
    region_match: bool = False
    country_match: bool = False
    isp_match: bool = False


class MatchResult(BaseModel):
    """Outcome of scoring one conversion against one pageview"""

    is_match: bool
    confidence: MatchConfidence
    # Geo score for geographic matches, otherwise the confidence points
    score: int = 0
    points: int = 0
    method: Optional[AttributionMethod] = None
    matched_ip: Optional[str] = None
    geo: Optional[GeoComparison] = None

    @classmethod
    def no_match(
        cls,
        confidence: MatchConfidence = MatchConfidence.NO_MATCH,
        geo: Optional[GeoComparison] = None,
    ) -> "MatchResult":
        return cls(
            is_match=False,
            confidence=confidence,
            score=geo.score if geo else 0,
            geo=geo,
        )


class MatchedPageview(BaseModel):
    """A pageview that passed the identity gate, with its provenance"""

    pageview: Pageview
    attribution_method: AttributionMethod
    confidence: int
    confidence_tier: MatchConfidence
    score: int = 0
    matched_ip: Optional[str] = None

    @property
    def dedupe_key(self) -> str:
        return self.pageview.dedupe_key
