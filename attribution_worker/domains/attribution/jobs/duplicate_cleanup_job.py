"""
Duplicate Journey Cleanup Job

The store cannot enforce one journey per order id, so duplicates are
detected by scan: journeys are grouped by ``conversion_order_id`` and only
the most recently created one survives.
"""

import time
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ....core.config.settings import AttributionSettings, settings
from ....core.logging import get_logger
from ....shared.helpers.datetime_utils import EARLIEST_UTC, coerce_timestamp
from ..repositories import JourneyRepository
from .progress import JobResult, RunBudget

logger = get_logger(__name__)


def _created_key(item: Tuple[str, Dict[str, Any]]) -> Tuple[datetime, str]:
    key, record = item
    return coerce_timestamp(record.get("created_at")) or EARLIEST_UTC, key


def plan_duplicate_removal(
    records: List[Tuple[str, Dict[str, Any]]],
) -> Tuple[List[str], Dict[str, List[str]]]:
    """
    Decide which journey keys to delete.

    Returns the keys to delete and, per duplicated order id, the keys of that
    group with the survivor first. The survivor has the latest ``created_at``;
    ties go to the larger key.
    """
    groups: Dict[str, List[Tuple[str, Dict[str, Any]]]] = defaultdict(list)
    for key, record in records:
        order_id = record.get("conversion_order_id")
        if order_id is None:
            continue
        groups[str(order_id)].append((key, record))

    to_delete: List[str] = []
    duplicate_groups: Dict[str, List[str]] = {}
    for order_id, members in groups.items():
        if len(members) < 2:
            continue
        ordered = sorted(members, key=_created_key, reverse=True)
        duplicate_groups[order_id] = [key for key, _ in ordered]
        to_delete.extend(key for key, _ in ordered[1:])

    return to_delete, duplicate_groups


class DuplicateJourneyCleanupJob:
    """Maintenance scan that keeps one journey per order id"""

    name = "duplicate_journey_cleanup"

    def __init__(
        self,
        store,
        config: Optional[AttributionSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.config = config or settings.attribution
        self.journeys = JourneyRepository(store, fan_out=self.config.FAN_OUT_SIZE)
        self.clock = clock

    async def run(self, dry_run: bool = False) -> JobResult:
        budget = RunBudget.from_settings(self.config, self.clock)
        result = JobResult(job=self.name)

        records = await self.journeys.load_all_records()
        to_delete, duplicate_groups = plan_duplicate_removal(records)

        removed = 0
        if to_delete and not dry_run:
            for order_id, keys in duplicate_groups.items():
                logger.warning(
                    "Removing duplicate journeys",
                    order_id=order_id,
                    kept=keys[0],
                    deleted=len(keys) - 1,
                )
            removed = await self.journeys.delete(
                to_delete, batch_size=self.config.CLEANUP_DELETE_BATCH_SIZE
            )

        unique_orders = {
            str(record.get("conversion_order_id"))
            for _, record in records
            if record.get("conversion_order_id") is not None
        }

        result.processed = len(records)
        result.message = (
            f"Found {len(to_delete)} duplicate journeys"
            if dry_run
            else f"Removed {removed} duplicate journeys"
        )
        result.details = {
            "total_journeys_scanned": len(records),
            "duplicates_found": len(to_delete),
            "duplicates_removed": removed,
            "duplicate_groups": len(duplicate_groups),
            "unique_journeys_remaining": len(unique_orders),
            "dry_run": dry_run,
        }

        logger.info("Duplicate journey cleanup finished", **result.details)
        return result.finish(budget)
