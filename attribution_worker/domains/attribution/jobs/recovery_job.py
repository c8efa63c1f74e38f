"""
Attribution Recovery Job

Re-runs attribution for conversion-only journeys with the union IP
extraction and progressively wider windows, merging whatever is found into
the stored journey.
"""

import time
from typing import Callable, Dict, List, Optional, Tuple

from ....core.config.settings import AttributionSettings, settings
from ....core.logging import get_logger
from ....shared.constants.redis import RECOVERY_PROGRESS_KEY
from ..models import Conversion, Journey
from ..repositories import ConversionRepository, JourneyRepository, ProgressRepository
from ..services import AttributionService
from .progress import JobResult, JobStatus, RunBudget, load_progress

logger = get_logger(__name__)


class AttributionRecoveryJob:
    """Batch driver for recovering conversion-only journeys"""

    name = "attribution_recovery"

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

    @property
    def windows(self) -> Tuple[float, ...]:
        return (self.config.RECOVERY_WINDOW_HOURS, self.config.JOURNEY_WINDOW_HOURS)

    async def find_targets(self, force: bool = False) -> List[Tuple[str, Journey]]:
        """Conversion-only journeys that recovery has not stamped yet, newest first"""
        targets = [
            (key, journey)
            for key, journey in await self.journeys.load_all()
            if journey.total_touchpoints <= 1 and (force or not journey.recovery_attempted)
        ]
        targets.sort(key=lambda item: item[1].conversion_timestamp, reverse=True)
        return targets

    async def load_conversions(self, targets: List[Tuple[str, Journey]]) -> Dict[str, Conversion]:
        """Source conversions for the targets, read from the daily conversion index"""
        days = sorted({journey.conversion_timestamp.date() for _, journey in targets})
        conversions = await self.conversions.load_by_dates(days)
        return {conversion.order_id: conversion for conversion in conversions}

    async def run(
        self,
        batch_size: Optional[int] = None,
        force: bool = False,
        reset_progress: bool = False,
    ) -> JobResult:
        config = self.config
        batch_size = batch_size or config.RECOVERY_BATCH_SIZE
        budget = RunBudget.from_settings(config, self.clock)
        result = JobResult(job=self.name)

        progress = await load_progress(
            self.progress, RECOVERY_PROGRESS_KEY, self.name, reset_progress
        )

        targets = await self.find_targets(force)
        conversions_by_order = await self.load_conversions(targets) if targets else {}

        # Stamped journeys leave the target list, so only a forced run needs the cursor
        cursor = min(progress.last_cursor, len(targets)) if force else 0
        progress.total_to_process = len(targets)

        logger.info(
            "Starting attribution recovery",
            targets=len(targets),
            conversions_loaded=len(conversions_by_order),
            cursor=cursor,
            force=force,
        )

        while cursor < len(targets):
            if not budget.can_start_batch():
                logger.info(
                    "Stopping before next batch, budget reserve reached",
                    remaining_seconds=round(budget.remaining(), 2),
                    cursor=cursor,
                )
                break

            batch = targets[cursor : cursor + batch_size]
            for key, journey in batch:
                outcome = await self._recover_one(
                    key, journey, conversions_by_order.get(journey.conversion_order_id), result
                )
                progress.increment(outcome)

            cursor += len(batch)
            progress.last_cursor = cursor
            progress.last_batch_completed += 1
            progress.journeys_completed = cursor
            progress.touch()
            await self.progress.save(RECOVERY_PROGRESS_KEY, progress.model_dump())

        result.remaining = len(targets) - cursor
        progress.completed = result.remaining == 0
        progress.touch()
        await self.progress.save(RECOVERY_PROGRESS_KEY, progress.model_dump())

        result.status = JobStatus.COMPLETED if progress.completed else JobStatus.PARTIAL
        result.message = (
            "Attribution recovery completed"
            if progress.completed
            else "Attribution recovery paused; run again to resume"
        )
        result.details = {"counts": dict(progress.counts), "targets": len(targets)}

        logger.info(
            "Attribution recovery finished",
            status=result.status.value,
            processed=result.processed,
            skipped=result.skipped,
            remaining=result.remaining,
            counts=progress.counts,
        )
        return result.finish(budget)

    async def _recover_one(
        self,
        key: str,
        journey: Journey,
        conversion: Optional[Conversion],
        result: JobResult,
    ) -> str:
        order_id = journey.conversion_order_id
        if conversion is None:
            logger.warning("Source conversion not found for journey", order_id=order_id, key=key)
            result.skipped += 1
            return "conversion_not_found"

        try:
            matches = []
            window_used = None
            for window_hours in self.windows:
                matches = await self.service.resolve_attribution(conversion, window_hours)
                if matches:
                    window_used = window_hours
                    break

            if matches:
                updated = self.service.reconcile_journey(journey, conversion, matches)
                verified = await self.journeys.save_verified(updated, key)
                result.processed += 1
                logger.info(
                    "Recovered journey attribution",
                    order_id=order_id,
                    window_hours=window_used,
                    recovered_pageviews=updated.recovered_pageviews,
                    verified=verified,
                )
                return "recovered" if verified else "verification_failed"

            await self.journeys.save(self.service.reconciler.mark_not_found(journey), key)
            result.processed += 1
            return "not_found"

        except Exception as e:
            logger.error("Recovery failed", order_id=order_id, key=key, error=str(e))
            result.errors.append(f"{order_id}: {e}")
            return "errors"
