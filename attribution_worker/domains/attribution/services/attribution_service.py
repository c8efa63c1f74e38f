"""
Attribution Service

Entry point used by the batch jobs and the CLI. Wires the geo cache,
resolver, builder and reconciler over one store connection and exposes the
four core operations.
"""

from typing import List, Optional, Sequence

from ....core.config.settings import AttributionSettings, settings
from ....core.logging import get_logger
from ....shared.decorators import async_timing
from ..models import Conversion, GeoMode, GeoRecord, Journey, MatchedPageview, Pageview
from ..repositories import PageviewRepository
from .attribution_resolver import AttributionResolver
from .geo_lookup_service import GeoLookupService
from .identity_matcher import IdentityMatcher
from .journey_builder import JourneyBuilder
from .recovery_reconciler import RecoveryReconciler

logger = get_logger(__name__)


class AttributionService:
    """Resolve, build, reconcile and geo-lookup over a shared store"""

    def __init__(
        self,
        store,
        geo_service: Optional[GeoLookupService] = None,
        config: Optional[AttributionSettings] = None,
        builder: Optional[JourneyBuilder] = None,
    ):
        self.store = store
        self.config = config or settings.attribution
        self.geo_service = geo_service or GeoLookupService(store=store)
        self.pageviews = PageviewRepository(store, fan_out=self.config.FAN_OUT_SIZE)
        self.matcher = IdentityMatcher(self.config)
        self.resolver = AttributionResolver(
            self.pageviews,
            geo_service=self.geo_service,
            matcher=self.matcher,
            config=self.config,
        )
        self.builder = builder or JourneyBuilder(self.config)
        self.reconciler = RecoveryReconciler(self.builder, clock=self.builder.clock)

    async def close(self) -> None:
        await self.geo_service.close()

    @async_timing(threshold_ms=2000)
    async def resolve_attribution(
        self,
        conversion: Conversion,
        window_hours: Optional[float] = None,
        candidates: Optional[Sequence[Pageview]] = None,
        geo_mode: GeoMode = GeoMode.STANDARD,
        best: bool = False,
    ) -> List[MatchedPageview]:
        return await self.resolver.resolve(
            conversion,
            window_hours=window_hours,
            candidates=candidates,
            geo_mode=geo_mode,
            best=best,
        )

    def build_journey(
        self, conversion: Conversion, matches: Sequence[MatchedPageview]
    ) -> Journey:
        return self.builder.build(conversion, matches)

    def reconcile_journey(
        self,
        existing_journey: Journey,
        conversion: Conversion,
        new_matches: Sequence[MatchedPageview],
    ) -> Journey:
        return self.reconciler.reconcile(existing_journey, conversion, new_matches)

    async def lookup_geo(self, ip: str) -> GeoRecord:
        return await self.geo_service.resolve(ip)
