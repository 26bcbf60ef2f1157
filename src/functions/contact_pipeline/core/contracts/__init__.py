"""Data contracts for the contact pipeline."""

from .contact import (
    BioResearchPayload,
    ContactRecord,
    InvestorResearchPayload,
    Stage,
    ThesisPayload,
    UnitOutcome,
)
from .errors import (
    AIServiceError,
    LeaseUnavailableError,
    NoCheckpointError,
    PipelineAlreadyRunningError,
    PipelineControlError,
    PipelineError,
    UnusableResponseError,
)
from .pipeline_state import (
    JobStatus,
    PipelineProgress,
    PipelineState,
    RunSummary,
    StageCounters,
    StageProgress,
    StageResult,
    StepResult,
)

__all__ = [
    "AIServiceError",
    "BioResearchPayload",
    "ContactRecord",
    "InvestorResearchPayload",
    "JobStatus",
    "LeaseUnavailableError",
    "NoCheckpointError",
    "PipelineAlreadyRunningError",
    "PipelineControlError",
    "PipelineError",
    "PipelineProgress",
    "PipelineState",
    "RunSummary",
    "Stage",
    "StageCounters",
    "StageProgress",
    "StageResult",
    "StepResult",
    "ThesisPayload",
    "UnitOutcome",
    "UnusableResponseError",
]
