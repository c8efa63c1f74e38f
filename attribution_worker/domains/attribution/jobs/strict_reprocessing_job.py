"""
Strict Reprocessing Job

Re-scores POSSIBLE-confidence attributions with the strict geo policy (city
match mandatory). Each conversion is upgraded, kept or has its attribution
removed; removal also reduces the order's journey to conversion-only.
"""

import time
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ....core.config.settings import AttributionSettings, settings
from ....core.logging import get_logger
from ....shared.constants.redis import STRICT_REPROCESSED_PREFIX
from ....shared.helpers.batching import gather_in_batches
from ....shared.helpers.datetime_utils import EARLIEST_UTC, coerce_timestamp, now_utc, to_iso
from ..models import Conversion, GeoMode, Journey, MatchConfidence, Pageview
from ..repositories import (
    ConversionRepository,
    JourneyRepository,
    PageviewRepository,
)
from ..services import AttributionService, StrictOutcome, cleared_conversion
from .progress import JobResult, JobStatus, RunBudget

logger = get_logger(__name__)


def strict_marker_key(conversion: Conversion) -> str:
    return f"{STRICT_REPROCESSED_PREFIX}{conversion.email}:{to_iso(conversion.timestamp)}"


def latest_journeys_by_order(items: Sequence[Tuple[str, Journey]]) -> Dict[str, Tuple[str, Journey]]:
    """One journey per order id: the most recently created"""
    latest: Dict[str, Tuple[str, Journey]] = {}
    for key, journey in items:
        current = latest.get(journey.conversion_order_id)
        if current is None or _created_sort_key(key, journey) > _created_sort_key(*current):
            latest[journey.conversion_order_id] = (key, journey)
    return latest


def _created_sort_key(key: str, journey: Journey):
    return coerce_timestamp(journey.created_at) or EARLIEST_UTC, key


class StrictReprocessingJob:
    """Batch driver for strict re-evaluation of POSSIBLE attributions"""

    name = "strict_reprocessing"

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
        self.journeys = JourneyRepository(store, fan_out=self.config.FAN_OUT_SIZE)
        self.pageviews = PageviewRepository(store, fan_out=self.config.FAN_OUT_SIZE)
        self.clock = clock

    async def find_targets(self, date_range_days: int) -> List[Conversion]:
        """POSSIBLE attributions without a strict marker, newest first"""
        since = now_utc() - timedelta(days=date_range_days)
        possible = [
            conversion
            for conversion in await self.conversions.load_recent(since)
            if conversion.improvement_confidence == MatchConfidence.POSSIBLE.value
            and conversion.storage_key
        ]

        marked = await gather_in_batches(
            possible,
            lambda conversion: self.conversions.has_marker(strict_marker_key(conversion)),
            self.config.FAN_OUT_SIZE,
        )
        return [conversion for conversion, done in zip(possible, marked) if not done]

    async def load_candidates(
        self, targets: Sequence[Conversion], window_minutes: float
    ) -> List[Pageview]:
        """Every indexed pageview that can fall inside any target's strict window"""
        start = min(c.timestamp for c in targets) - timedelta(minutes=window_minutes)
        end = max(c.timestamp for c in targets)
        return await self.pageviews.load_window(start, end)

    async def run(
        self,
        batch_size: Optional[int] = None,
        window_minutes: Optional[float] = None,
        date_range_days: Optional[int] = None,
    ) -> JobResult:
        config = self.config
        batch_size = batch_size or config.STRICT_BATCH_SIZE
        window_minutes = window_minutes or config.STRICT_WINDOW_MINUTES
        date_range_days = date_range_days or config.DATE_RANGE_DAYS

        budget = RunBudget.from_settings(config, self.clock)
        result = JobResult(job=self.name)
        counts = {outcome.value: 0 for outcome in StrictOutcome}

        targets = await self.find_targets(date_range_days)
        if not targets:
            result.message = "No POSSIBLE attributions awaiting strict reprocessing"
            result.details = {"counts": counts}
            return result.finish(budget)

        candidates = await self.load_candidates(targets, window_minutes)
        journeys_by_order = latest_journeys_by_order(await self.journeys.load_all())

        logger.info(
            "Starting strict reprocessing",
            targets=len(targets),
            candidates=len(candidates),
            window_minutes=window_minutes,
        )

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
                outcome = await self._reprocess_one(
                    conversion, candidates, window_minutes, journeys_by_order, result
                )
                if outcome is not None:
                    counts[outcome.value] += 1
            cursor += len(batch)

        result.remaining = len(targets) - cursor
        result.status = JobStatus.COMPLETED if result.remaining == 0 else JobStatus.PARTIAL
        result.message = (
            "Strict reprocessing completed"
            if result.remaining == 0
            else "Strict reprocessing paused; run again to continue"
        )
        result.details = {"counts": counts, "candidates": len(candidates)}

        logger.info(
            "Strict reprocessing finished",
            processed=result.processed,
            remaining=result.remaining,
            counts=counts,
        )
        return result.finish(budget)

    async def _reprocess_one(
        self,
        conversion: Conversion,
        candidates: Sequence[Pageview],
        window_minutes: float,
        journeys_by_order: Dict[str, Tuple[str, Journey]],
        result: JobResult,
    ) -> Optional[StrictOutcome]:
        reconciler = self.service.reconciler
        previous_confidence = conversion.improvement_confidence

        try:
            matches = await self.service.resolve_attribution(
                conversion,
                window_hours=window_minutes / 60,
                candidates=candidates,
                geo_mode=GeoMode.STRICT,
                best=True,
            )
            best = matches[0] if matches else None
            outcome = StrictOutcome.for_match(best)

            updated = reconciler.apply_strict_result(
                conversion.raw, outcome, best, conversion.timestamp
            )
            await self.conversions.save_record(conversion.storage_key, updated)

            if outcome == StrictOutcome.ATTRIBUTION_REMOVED:
                logger.warning(
                    "Attribution removed by strict reprocessing",
                    order_id=conversion.order_id,
                    previous_landing_page=conversion.landing_page,
                    previous_confidence=previous_confidence,
                )
                stored = journeys_by_order.get(conversion.order_id)
                if stored is not None and stored[1].pageview_touchpoints:
                    key, journey = stored
                    reduced = reconciler.remove_journey_attribution(
                        journey, cleared_conversion(conversion), previous_confidence
                    )
                    await self.journeys.save(reduced, key)
            else:
                logger.info(
                    "Strict reprocessing kept attribution",
                    order_id=conversion.order_id,
                    outcome=outcome.value,
                    confidence=best.confidence_tier.value,
                    score=best.score,
                )

            await self.conversions.set_marker(
                strict_marker_key(conversion),
                self.config.STRICT_MARKER_TTL_SECONDS,
                {
                    "order_id": conversion.order_id,
                    "result": outcome.value,
                    "reprocessed_at": to_iso(now_utc()),
                },
            )
            result.processed += 1
            return outcome

        except Exception as e:
            logger.error(
                "Strict reprocessing failed",
                order_id=conversion.order_id,
                error=str(e),
            )
            result.errors.append(f"{conversion.order_id}: {e}")
            return None
