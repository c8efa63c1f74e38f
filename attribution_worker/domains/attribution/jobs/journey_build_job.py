"""
Journey Build Job

Builds journeys for recent conversions in small batches under a wall-clock
budget, persisting progress so a later invocation can resume.
"""

import time
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from ....core.config.settings import AttributionSettings, settings
from ....core.exceptions import StorageError
from ....core.logging import get_logger
from ....shared.constants.redis import (
    ANALYTICS_TTL_SECONDS,
    JOURNEY_ANALYTICS_KEY,
    JOURNEY_BUILD_PROGRESS_KEY,
)
from ....shared.helpers.batching import gather_in_batches
from ....shared.helpers.datetime_utils import now_utc, to_iso
from ..models import Conversion, Journey
from ..repositories import ConversionRepository, JourneyRepository, ProgressRepository
from ..services import AttributionService
from .progress import JobResult, JobStatus, RunBudget, load_progress

logger = get_logger(__name__)


def summarize_journeys(journeys: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Aggregate figures over stored journey records"""
    total = len(journeys)
    divisor = total or 1
    return {
        "total_journeys": total,
        "journeys_with_multiple_touchpoints": sum(
            1 for j in journeys if (j.get("total_touchpoints") or 0) > 1
        ),
        "conversion_only_journeys": sum(
            1 for j in journeys if (j.get("total_touchpoints") or 0) <= 1
        ),
        "cross_session_journeys": sum(1 for j in journeys if j.get("cross_session_journey")),
        "cross_device_journeys": sum(1 for j in journeys if j.get("cross_device_journey")),
        "avg_touchpoints": round(
            sum(j.get("total_touchpoints") or 0 for j in journeys) / divisor, 2
        ),
        "avg_journey_span_hours": round(
            sum(j.get("journey_span_hours") or 0 for j in journeys) / divisor, 2
        ),
        "total_conversion_value": round(
            sum(float(j.get("conversion_value") or 0) for j in journeys), 2
        ),
        "generated_at": to_iso(now_utc()),
    }


class JourneyBuildJob:
    """
    Batch driver for journey reconstruction.
    """

    name = "build_journeys"

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
        self.progress = ProgressRepository(store)
        self.clock = clock

    async def run(
        self,
        date_range_days: Optional[int] = None,
        journey_window_hours: Optional[float] = None,
        batch_size: Optional[int] = None,
        max_batches: Optional[int] = None,
        force_rebuild: bool = False,
        reset_progress: bool = False,
    ) -> JobResult:
        """
        Build journeys for conversions from the last ``date_range_days``.

        Conversions that already have a journey are skipped unless
        ``force_rebuild``; in that case the persisted cursor marks where the
        previous invocation stopped.
        """
        config = self.config
        date_range_days = date_range_days or config.DATE_RANGE_DAYS
        window_hours = journey_window_hours or config.JOURNEY_WINDOW_HOURS
        batch_size = batch_size or config.JOURNEY_BATCH_SIZE
        max_batches = max_batches or config.JOURNEY_MAX_BATCHES

        budget = RunBudget.from_settings(config, self.clock)
        result = JobResult(job=self.name)
        logger.info(
            "Starting journey build",
            date_range_days=date_range_days,
            window_hours=window_hours,
            batch_size=batch_size,
            max_batches=max_batches,
            force_rebuild=force_rebuild,
        )

        progress = await load_progress(
            self.progress, JOURNEY_BUILD_PROGRESS_KEY, self.name, reset_progress
        )

        since = now_utc() - timedelta(days=date_range_days)
        conversions = await self.conversions.load_recent(since)

        if force_rebuild:
            work = conversions
            cursor = min(progress.last_cursor, len(work))
        else:
            existing = await self.journeys.existing_order_ids()
            work = [c for c in conversions if c.order_id not in existing]
            result.skipped = len(conversions) - len(work)
            cursor = 0

        progress.total_to_process = len(work)
        batches_run = 0

        while cursor < len(work) and batches_run < max_batches:
            if not budget.can_start_batch():
                logger.info(
                    "Stopping before next batch, budget reserve reached",
                    remaining_seconds=round(budget.remaining(), 2),
                    cursor=cursor,
                )
                break

            batch = work[cursor : cursor + batch_size]
            journeys = await gather_in_batches(
                batch,
                lambda conversion: self._build_one(conversion, window_hours, result),
                config.FAN_OUT_SIZE,
            )

            for journey in journeys:
                if journey is None:
                    continue
                result.processed += 1
                progress.journeys_completed += 1
                if journey.total_touchpoints > 1:
                    progress.increment("multi_touchpoint_journeys")
                else:
                    progress.increment("conversion_only_journeys")
                if journey.cross_session_journey:
                    progress.increment("cross_session_journeys")

            cursor += len(batch)
            batches_run += 1
            progress.last_cursor = cursor
            progress.last_batch_completed += 1
            progress.touch()
            await self.progress.save(JOURNEY_BUILD_PROGRESS_KEY, progress.model_dump())

        result.remaining = len(work) - cursor
        progress.completed = result.remaining == 0
        progress.touch()
        await self.progress.save(JOURNEY_BUILD_PROGRESS_KEY, progress.model_dump())

        if progress.completed:
            records = [record for _, record in await self.journeys.load_all_records()]
            analytics = summarize_journeys(records)
            await self.progress.save(JOURNEY_ANALYTICS_KEY, analytics, ANALYTICS_TTL_SECONDS)
            result.details["analytics"] = analytics
            result.status = JobStatus.COMPLETED
            result.message = "Journey build completed"
        else:
            result.status = JobStatus.PARTIAL
            result.message = "Journey build paused; run again to resume"

        result.details.update(
            {
                "batches_processed": batches_run,
                "total_conversions_to_process": len(work),
                "progress": progress.model_dump(),
            }
        )

        logger.info(
            "Journey build finished",
            status=result.status.value,
            processed=result.processed,
            skipped=result.skipped,
            remaining=result.remaining,
        )
        return result.finish(budget)

    async def _build_one(
        self, conversion: Conversion, window_hours: float, result: JobResult
    ) -> Optional[Journey]:
        try:
            matches = await self.service.resolve_attribution(conversion, window_hours)
            journey = self.service.build_journey(conversion, matches)
        except Exception as e:
            logger.error(
                "Attribution failed, storing conversion-only journey",
                order_id=conversion.order_id,
                error=str(e),
            )
            result.errors.append(f"{conversion.order_id}: {e}")
            journey = self.service.builder.build_conversion_only(conversion)

        try:
            await self.journeys.save(journey)
        except StorageError as e:
            logger.error(
                "Failed to store journey",
                order_id=conversion.order_id,
                journey_id=journey.journey_id,
                error=str(e),
            )
            result.errors.append(f"{conversion.order_id}: store failed: {e}")
            result.details["failed_saves"] = result.details.get("failed_saves", 0) + 1
            return None

        return journey
