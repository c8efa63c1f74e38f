"""
Attribution services
"""

from .attribution_resolver import AttributionResolver, dedupe_matches, rank_matches
from .attribution_service import AttributionService
from .geo_lookup_service import GeoLookupService, GeoMemoryCache
from .identity_matcher import IdentityMatcher, compare_geo, compare_isps
from .journey_builder import JourneyBuilder
from .recovery_reconciler import RecoveryReconciler, StrictOutcome, cleared_conversion

__all__ = [
    "AttributionResolver",
    "AttributionService",
    "GeoLookupService",
    "GeoMemoryCache",
    "IdentityMatcher",
    "JourneyBuilder",
    "RecoveryReconciler",
    "StrictOutcome",
    "cleared_conversion",
    "compare_geo",
    "compare_isps",
    "dedupe_matches",
    "rank_matches",
]
