"""
Run budget, resumable progress records and job results shared by the batch jobs
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ....core.config.settings import AttributionSettings, settings
from ....shared.helpers.datetime_utils import now_utc, to_iso


@dataclass
class RunBudget:
    """Wall-clock budget for one invocation"""

    total_seconds: float
    reserve_seconds: float
    clock: Callable[[], float] = time.monotonic
    started_at: float = field(init=False)

    def __post_init__(self):
        self.started_at = self.clock()

    @classmethod
    def from_settings(
        cls,
        config: Optional[AttributionSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "RunBudget":
        config = config or settings.attribution
        return cls(config.RUN_BUDGET_SECONDS, config.BATCH_RESERVE_SECONDS, clock)

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def remaining(self) -> float:
        return self.total_seconds - self.elapsed()

    def can_start_batch(self) -> bool:
        """A new batch may start only while the reserve is still untouched"""
        return self.remaining() >= self.reserve_seconds


class BatchProgress(BaseModel):
    """Persisted cursor and counters that let a later invocation resume"""

    job: str
    last_cursor: int = 0
    last_batch_completed: int = 0
    journeys_completed: int = 0
    total_to_process: int = 0
    counts: Dict[str, int] = Field(default_factory=dict)
    completed: bool = False
    started_at: str = Field(default_factory=lambda: to_iso(now_utc()))
    last_updated: Optional[str] = None

    def increment(self, name: str, by: int = 1) -> None:
        self.counts[name] = self.counts.get(name, 0) + by

    def touch(self) -> None:
        self.last_updated = to_iso(now_utc())


async def load_progress(progress_repository, key: str, job: str, reset: bool) -> BatchProgress:
    """Stored progress for ``job``, or a fresh record after a reset or a finished run"""
    if reset:
        await progress_repository.clear(key)
        return BatchProgress(job=job)

    record = await progress_repository.load(key)
    if not record:
        return BatchProgress(job=job)

    try:
        progress = BatchProgress.model_validate(record)
    except ValueError:
        return BatchProgress(job=job)

    return BatchProgress(job=job) if progress.completed else progress


class JobStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class JobResult(BaseModel):
    """Structured outcome of a job invocation"""

    job: str
    status: JobStatus = JobStatus.COMPLETED
    message: str = ""
    processed: int = 0
    skipped: int = 0
    remaining: int = 0
    details: Dict[str, Any] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    start_time: str = Field(default_factory=lambda: to_iso(now_utc()))
    end_time: Optional[str] = None
    duration_seconds: float = 0.0

    def finish(self, budget: Optional[RunBudget] = None) -> "JobResult":
        self.end_time = to_iso(now_utc())
        if budget is not None:
            self.duration_seconds = round(budget.elapsed(), 3)
        return self
