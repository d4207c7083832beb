"""Run records and statuses."""

from presubmit.models.run import CommandTrace, Entrypoint, PipelineRun, StageRecord
from presubmit.models.status import StageStatus

__all__ = [
    "CommandTrace",
    "Entrypoint",
    "PipelineRun",
    "StageRecord",
    "StageStatus",
]
