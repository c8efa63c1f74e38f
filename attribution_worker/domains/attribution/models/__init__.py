"""
Attribution domain models
"""

from .conversion import Conversion
from .geo import GeoRecord
from .journey import Journey, JourneyState, Touchpoint, TouchpointType
from .match import (
    NO_PRIORITY_LEVEL,
    PRIORITY_LEVELS,
    AttributionMethod,
    GeoComparison,
    GeoMode,
    MatchConfidence,
    MatchedPageview,
    MatchResult,
)
from .pageview import Pageview

__all__ = [
    "Conversion",
    "GeoRecord",
    "Journey",
    "JourneyState",
    "Touchpoint",
    "TouchpointType",
    "AttributionMethod",
    "GeoComparison",
    "GeoMode",
    "MatchConfidence",
    "MatchedPageview",
    "MatchResult",
    "NO_PRIORITY_LEVEL",
    "PRIORITY_LEVELS",
    "Pageview",
]
