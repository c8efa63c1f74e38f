"""
Batch jobs for the attribution domain
"""

from .duplicate_cleanup_job import DuplicateJourneyCleanupJob, plan_duplicate_removal
from .improvement_job import AttributionImprovementJob, ImprovementType
from .journey_build_job import JourneyBuildJob, summarize_journeys
from .progress import BatchProgress, JobResult, JobStatus, RunBudget
from .recovery_job import AttributionRecoveryJob
from .strict_reprocessing_job import StrictReprocessingJob

__all__ = [
    "AttributionImprovementJob",
    "AttributionRecoveryJob",
    "BatchProgress",
    "DuplicateJourneyCleanupJob",
    "ImprovementType",
    "JobResult",
    "JobStatus",
    "JourneyBuildJob",
    "RunBudget",
    "StrictReprocessingJob",
    "plan_duplicate_removal",
    "summarize_journeys",
]
