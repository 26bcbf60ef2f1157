"""Stage transition rules shared by both pipeline drivers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..contracts import JobStatus, Stage, StageResult

logger = logging.getLogger(__name__)


class PipelinePhase(str, Enum):
    ENRICHMENT = "enrichment"
    EXTRACTION = "extraction"
    EMBEDDING = "embedding"
    IDLE = "idle"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class Transition:
    """Where a pipeline goes after one stage result."""

    stage: Stage
    status: JobStatus
    cycle_complete: bool = False

    @property
    def phase(self) -> PipelinePhase:
        if self.status is JobStatus.FAILED:
            return PipelinePhase.FAILED
        if self.status is JobStatus.IDLE:
            return PipelinePhase.IDLE
        return PipelinePhase(self.stage.value)


class PipelineStateMachine:
    """enrichment -> extraction -> embedding -> (enrichment | idle), failed on repeated errors."""

    def __init__(self, error_threshold: int = 5) -> None:
        self.error_threshold = error_threshold

    @staticmethod
    def requires_work_check(result: StageResult) -> bool:
        """A fresh work check is needed only when the last stage finishes."""
        return result.completed and result.stage.next is None

    def advance(self, result: StageResult, has_more_work: Optional[bool] = None) -> Transition:
        """Return the next stage/status for a completed or partial stage result.

        Args:
            result: Outcome of the Stage Runner call
            has_more_work: Result of the work check, required when
                ``requires_work_check(result)`` is True
        """
        stage = result.stage
        if not result.completed:
            return Transition(stage=stage, status=JobStatus.RUNNING)

        next_stage = stage.next
        if next_stage is not None:
            logger.debug("Stage %s exhausted, moving to %s", stage.value, next_stage.value)
            return Transition(stage=next_stage, status=JobStatus.RUNNING)

        if has_more_work is None:
            raise ValueError("has_more_work is required once the final stage completes")
        if has_more_work:
            logger.info("Cycle finished with new eligible contacts, restarting at enrichment")
            return Transition(stage=Stage.ENRICHMENT, status=JobStatus.RUNNING, cycle_complete=True)
        logger.info("Cycle finished with no remaining work, going idle")
        return Transition(stage=Stage.ENRICHMENT, status=JobStatus.IDLE, cycle_complete=True)

    def on_error(self, error_count: int, current: JobStatus = JobStatus.RUNNING) -> JobStatus:
        """Status after ``error_count`` consecutive failed steps."""
        if error_count >= self.error_threshold:
            return JobStatus.FAILED
        return current
