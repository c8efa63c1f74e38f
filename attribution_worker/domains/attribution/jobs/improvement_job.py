"""
Attribution Improvement Job

Re-evaluates recent conversions against the attribution priority ladder and
rewrites a conversion only when a strictly better-ranked method is found.
"""

import time
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ....core.config.settings import AttributionSettings, settings
from ....core.logging import get_logger
from ....shared.constants.redis import IMPROVEMENT_REPROCESSED_PREFIX
from ....shared.helpers.batching import gather_in_batches
from ....shared.helpers.datetime_utils import now_utc, to_iso
from ..models import (
    NO_PRIORITY_LEVEL,
    AttributionMethod,
    Conversion,
    GeoMode,
    MatchedPageview,
    Pageview,
)
from ..repositories import ConversionRepository, PageviewRepository
from ..services import AttributionService
from .progress import JobResult, JobStatus, RunBudget

logger = get_logger(__name__)


class ImprovementType(str, Enum):
    NEW_ATTRIBUTION = "NEW_ATTRIBUTION"
    BETTER_ATTRIBUTION = "BETTER_ATTRIBUTION"
    NO_IMPROVEMENT = "NO_IMPROVEMENT"


def improvement_marker_key(conversion: Conversion) -> str:
    return f"{IMPROVEMENT_REPROCESSED_PREFIX}{conversion.email}:{to_iso(conversion.timestamp)}"


def current_priority(conversion: Conversion) -> int:
    if conversion.attribution_found and conversion.priority_level is not None:
        return conversion.priority_level
    return NO_PRIORITY_LEVEL


def improved_record(
    conversion: Conversion,
    match: MatchedPageview,
    improvement_type: ImprovementType,
) -> Dict[str, Any]:
    """Full conversion record carrying the improved attribution"""
    pageview = match.pageview
    record = dict(conversion.raw)
    improvement = dict(record.get("attribution_improvement") or {})
    improvement.update(
        {
            "method": match.attribution_method.value,
            "improvement_type": improvement_type.value,
            "priority_level": match.attribution_method.priority_level,
            "confidence": match.confidence_tier.value,
            "score": match.confidence,
            "improved_at": to_iso(now_utc()),
        }
    )
    record.update(
        {
            "attribution_found": True,
            "attribution_method": match.attribution_method.value,
            "landing_page": pageview.landing_page,
            "source": pageview.source,
            "utm_campaign": pageview.campaign or record.get("utm_campaign"),
            "utm_medium": pageview.medium or record.get("utm_medium"),
            "referrer_url": pageview.referrer_url or record.get("referrer_url"),
            "attributed_pageview_timestamp": to_iso(pageview.timestamp),
            "attribution_improvement": improvement,
        }
    )
    return record


class AttributionImprovementJob:
    """Batch driver for the priority-ladder re-evaluation"""

    name = "attribution_improvement"

    def __init__(
        self,
        store,
        service: Optional[AttributionService] = None,
        config: Optional[AttributionSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.config = config or settings.attribution
        self.service = service or AttributionService(store, config=self.config)
        self.conversions = ConversionRepository(store, fan_out=self.config.FAN_OUT_SIZE)
        self.pageviews = PageviewRepository(store, fan_out=self.config.FAN_OUT_SIZE)
        self.clock = clock
        self._geo_candidates: Optional[List[Pageview]] = None

    async def find_targets(self, lookback_hours: float) -> List[Conversion]:
        since = now_utc() - timedelta(hours=lookback_hours)
        recent = [c for c in await self.conversions.load_recent(since) if c.storage_key]
        marked = await gather_in_batches(
            recent,
            lambda conversion: self.conversions.has_marker(improvement_marker_key(conversion)),
            self.config.FAN_OUT_SIZE,
        )
        return [conversion for conversion, done in zip(recent, marked) if not done]

    async def _candidates_for_geo(self, targets: List[Conversion]) -> List[Pageview]:
        if self._geo_candidates is None:
            window = timedelta(hours=self.config.RECOVERY_WINDOW_HOURS)
            start = min(c.timestamp for c in targets) - window
            end = max(c.timestamp for c in targets)
            self._geo_candidates = await self.pageviews.load_window(start, end)
        return self._geo_candidates

    async def run(
        self,
        lookback_hours: Optional[float] = None,
        batch_size: Optional[int] = None,
    ) -> JobResult:
        config = self.config
        batch_size = batch_size or config.RECOVERY_BATCH_SIZE
        lookback_hours = lookback_hours or config.IMPROVEMENT_LOOKBACK_HOURS
        budget = RunBudget.from_settings(config, self.clock)
        result = JobResult(job=self.name)
        counts = {improvement.value: 0 for improvement in ImprovementType}
        self._geo_candidates = None

        targets = await self.find_targets(lookback_hours)
        logger.info("Starting attribution improvement", targets=len(targets))

        cursor = 0
        while cursor < len(targets):
            if not budget.can_start_batch():
                logger.info(
                    "Stopping before next batch, budget reserve reached",
                    remaining_seconds=round(budget.remaining(), 2),
                )
                break

            batch = targets[cursor : cursor + batch_size]
            for conversion in batch:
                improvement = await self._improve_one(conversion, targets, result)
                if improvement is not None:
                    counts[improvement.value] += 1
            cursor += len(batch)

        result.remaining = len(targets) - cursor
        result.status = JobStatus.COMPLETED if result.remaining == 0 else JobStatus.PARTIAL
        result.message = (
            "Attribution improvement completed"
            if result.remaining == 0
            else "Attribution improvement paused; run again to continue"
        )
        result.details = {"counts": counts}

        logger.info(
            "Attribution improvement finished",
            processed=result.processed,
            remaining=result.remaining,
            counts=counts,
        )
        return result.finish(budget)

    async def find_better_match(
        self, conversion: Conversion, targets: List[Conversion]
    ) -> Optional[MatchedPageview]:
        """Best match whose method ranks above the conversion's current attribution"""
        priority = current_priority(conversion)

        matches = await self.service.resolve_attribution(
            conversion, self.config.RECOVERY_WINDOW_HOURS, best=True
        )
        if matches and matches[0].attribution_method.priority_level < priority:
            return matches[0]

        if AttributionMethod.GEOGRAPHIC.priority_level >= priority:
            return None

        candidates = await self._candidates_for_geo(targets)
        matches = await self.service.resolve_attribution(
            conversion,
            self.config.RECOVERY_WINDOW_HOURS,
            candidates=candidates,
            geo_mode=GeoMode.STANDARD,
            best=True,
        )
        if matches and matches[0].attribution_method.priority_level < priority:
            return matches[0]
        return None

    async def _improve_one(
        self, conversion: Conversion, targets: List[Conversion], result: JobResult
    ) -> Optional[ImprovementType]:
        try:
            match = await self.find_better_match(conversion, targets)

            if match is None:
                improvement = ImprovementType.NO_IMPROVEMENT
            else:
                improvement = (
                    ImprovementType.BETTER_ATTRIBUTION
                    if conversion.attribution_found
                    else ImprovementType.NEW_ATTRIBUTION
                )
                await self.conversions.save_record(
                    conversion.storage_key, improved_record(conversion, match, improvement)
                )
                logger.info(
                    "Attribution improved",
                    order_id=conversion.order_id,
                    improvement_type=improvement.value,
                    method=match.attribution_method.value,
                    priority_level=match.attribution_method.priority_level,
                    previous_priority=current_priority(conversion),
                )

            await self.conversions.set_marker(
                improvement_marker_key(conversion),
                self.config.IMPROVEMENT_MARKER_TTL_SECONDS,
                {
                    "order_id": conversion.order_id,
                    "improvement_type": improvement.value,
                    "reprocessed_at": to_iso(now_utc()),
                },
            )
            result.processed += 1
            return improvement

        except Exception as e:
            logger.error(
                "Attribution improvement failed",
                order_id=conversion.order_id,
                error=str(e),
            )
            result.errors.append(f"{conversion.order_id}: {e}")
            return None
