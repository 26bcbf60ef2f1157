"""Checkpoint, stage result and progress models for pipeline runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .contact import Stage

STATE_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Lifecycle status persisted on a pipeline job row."""

    RUNNING = "running"
    IDLE = "idle"
    FAILED = "failed"


@dataclass(slots=True)
class StageResult:
    """Outcome of a single Stage Runner invocation."""

    stage: Stage
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    completed: bool = False
    cursor: Optional[str] = None
    processed_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    deadline_reached: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "stage": self.stage.value,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "completed": self.completed,
            "deadline_reached": self.deadline_reached,
        }


class StageCounters(BaseModel):
    """Per-stage tallies; ``processed`` is always ``succeeded + failed``."""

    succeeded: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def add(self, result: StageResult) -> None:
        self.succeeded += result.succeeded
        self.failed += result.failed
        self.skipped += result.skipped


def _empty_counters() -> Dict[Stage, StageCounters]:
    return {stage: StageCounters() for stage in Stage}


class PipelineState(BaseModel):
    """Resumable checkpoint for one owner's pipeline run."""

    version: int = Field(default=STATE_VERSION)
    owner_id: Optional[str] = None
    enrolled_ids: List[str] = Field(default_factory=list)
    processed_ids: List[str] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
    current_index: int = Field(default=0, ge=0)
    current_stage: Stage = Stage.ENRICHMENT
    stage_cursor: Optional[str] = None
    counters: Dict[Stage, StageCounters] = Field(default_factory=_empty_counters)
    started_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _validate_membership(self) -> "PipelineState":
        if self.version != STATE_VERSION:
            raise ValueError(f"unsupported checkpoint version {self.version}")
        enrolled = set(self.enrolled_ids)
        stray = [item for item in self.processed_ids if item not in enrolled]
        if stray:
            raise ValueError(f"processed ids not enrolled in run: {stray[:5]}")
        if len(set(self.processed_ids)) != len(self.processed_ids):
            raise ValueError("processed ids contain duplicates")
        for stage in Stage:
            self.counters.setdefault(stage, StageCounters())
        return self

    @classmethod
    def enroll(cls, owner_id: Optional[str], contact_ids: List[str]) -> "PipelineState":
        ordered = list(dict.fromkeys(contact_ids))
        return cls(owner_id=owner_id, enrolled_ids=ordered, total=len(ordered))

    def remaining_ids(self) -> List[str]:
        done = set(self.processed_ids)
        return [contact_id for contact_id in self.enrolled_ids if contact_id not in done]

    def record_batch(self, batch_ids: List[str], results: List[StageResult]) -> None:
        """Fold one client batch into the checkpoint."""
        done = set(self.processed_ids)
        for contact_id in batch_ids:
            if contact_id not in done:
                self.processed_ids.append(contact_id)
                done.add(contact_id)
        for result in results:
            self.counters[result.stage].add(result)
        self.current_index = len(self.processed_ids)
        self.updated_at = utc_now()

    def apply_stage_result(self, result: StageResult) -> None:
        """Fold one scheduled step into the checkpoint counters and cursor."""
        self.counters[result.stage].add(result)
        self.current_stage = result.stage
        self.stage_cursor = None if result.completed else result.cursor
        self.updated_at = utc_now()


@dataclass(slots=True)
class StageProgress:
    processed: int
    total: int
    succeeded: int
    failed: int
    skipped: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass(slots=True)
class PipelineProgress:
    """Consistent snapshot published to observers after each batch."""

    owner_id: Optional[str]
    running: bool
    paused: bool
    processed: int
    total: int
    current_batch: int
    total_batches: int
    current_stage: Optional[Stage]
    stages: Dict[Stage, StageProgress]

    @classmethod
    def from_state(
        cls,
        state: Optional[PipelineState],
        *,
        owner_id: Optional[str],
        running: bool,
        paused: bool,
        batch_size: int,
        current_stage: Optional[Stage] = None,
    ) -> "PipelineProgress":
        if state is None:
            return cls(
                owner_id=owner_id,
                running=running,
                paused=paused,
                processed=0,
                total=0,
                current_batch=0,
                total_batches=0,
                current_stage=current_stage,
                stages={},
            )
        processed = len(state.processed_ids)
        stages = {
            stage: StageProgress(
                processed=counters.processed,
                total=state.total,
                succeeded=counters.succeeded,
                failed=counters.failed,
                skipped=counters.skipped,
            )
            for stage, counters in state.counters.items()
        }
        return cls(
            owner_id=owner_id,
            running=running,
            paused=paused,
            processed=processed,
            total=state.total,
            current_batch=-(-processed // batch_size) if batch_size else 0,
            total_batches=-(-state.total // batch_size) if batch_size else 0,
            current_stage=current_stage,
            stages=stages,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "owner_id": self.owner_id,
            "running": self.running,
            "paused": self.paused,
            "processed": self.processed,
            "total": self.total,
            "current_batch": self.current_batch,
            "total_batches": self.total_batches,
            "current_stage": self.current_stage.value if self.current_stage else None,
            "stages": {stage.value: item.to_dict() for stage, item in self.stages.items()},
        }


@dataclass(slots=True)
class RunSummary:
    """Final counters reported when a client-driven run ends."""

    owner_id: Optional[str]
    processed: int
    total: int
    counters: Dict[Stage, StageCounters]
    stopped_early: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "owner_id": self.owner_id,
            "processed": self.processed,
            "total": self.total,
            "stopped_early": self.stopped_early,
            "stages": {
                stage.value: {**counters.model_dump(), "processed": counters.processed}
                for stage, counters in self.counters.items()
            },
        }


@dataclass(slots=True)
class StepResult:
    """Outcome of one scheduled step for one owner's pipeline job."""

    owner_id: str
    status: str
    stage: Optional[Stage] = None
    next_stage: Optional[Stage] = None
    result: Optional[StageResult] = None
    error: Optional[str] = None
    skipped_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "owner_id": self.owner_id,
            "status": self.status,
            "stage": self.stage.value if self.stage else None,
            "next_stage": self.next_stage.value if self.next_stage else None,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "skipped_reason": self.skipped_reason,
        }
