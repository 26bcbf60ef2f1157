"""Durable checkpoint stores for pipeline progress.

Both stores share one contract: ``save(state)`` persists a checkpoint,
``save(None)`` clears it, and ``load()`` returns the last saved state or
None. A checkpoint that cannot be parsed or fails validation loads as None.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from pydantic import ValidationError

from src.shared.batch import CheckpointSlot

from ..contracts import PipelineState, Stage, StageCounters
from ..db.pipeline_job_store import JobRecord, PipelineJobStore, counter_column

logger = logging.getLogger(__name__)

SLOT_KEY_PREFIX = "contact-pipeline"


class ProgressStore(Protocol):
    def save(self, state: Optional[PipelineState]) -> None: ...

    def load(self) -> Optional[PipelineState]: ...


def slot_key(owner_id: Optional[str]) -> str:
    return f"{SLOT_KEY_PREFIX}:{owner_id or 'all'}"


class LocalProgressStore:
    """Checkpoint kept in a client-local key/value slot as one JSON string."""

    def __init__(self, slot: CheckpointSlot, owner_id: Optional[str]) -> None:
        self.slot = slot
        self.key = slot_key(owner_id)

    def save(self, state: Optional[PipelineState]) -> None:
        if state is None:
            self.slot.remove_item(self.key)
            logger.debug("Cleared checkpoint %s", self.key)
            return
        self.slot.set_item(self.key, state.model_dump_json())

    def load(self) -> Optional[PipelineState]:
        raw = self.slot.get_item(self.key)
        if raw is None:
            return None
        try:
            return PipelineState.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Ignoring unreadable checkpoint %s: %s", self.key, exc.errors()[:1])
            return None


class JobProgressStore:
    """Checkpoint kept as counter/stage/cursor columns on a pipeline job row."""

    def __init__(self, job_store: PipelineJobStore, job: JobRecord) -> None:
        self.job_store = job_store
        self.job = job

    def save(self, state: Optional[PipelineState]) -> None:
        fields: Dict[str, Any] = {}
        for stage in Stage:
            counters = state.counters[stage] if state is not None else StageCounters()
            fields[counter_column(stage, "processed")] = counters.processed
            fields[counter_column(stage, "succeeded")] = counters.succeeded
            fields[counter_column(stage, "failed")] = counters.failed
        fields["current_stage"] = (state.current_stage if state else Stage.ENRICHMENT).value
        fields["stage_cursor"] = state.stage_cursor if state else None

        self.job_store.update_fields(self.job.id, fields)
        self.job.counters.update({k: v for k, v in fields.items() if k in self.job.counters})
        self.job.current_stage = Stage(fields["current_stage"])
        self.job.stage_cursor = fields["stage_cursor"]

    def load(self) -> Optional[PipelineState]:
        row = self.job_store.load_row(self.job.id)
        if row is None:
            return None
        try:
            counters = {
                stage: StageCounters(
                    succeeded=int(row.get(counter_column(stage, "succeeded")) or 0),
                    failed=int(row.get(counter_column(stage, "failed")) or 0),
                )
                for stage in Stage
            }
            return PipelineState(
                owner_id=str(row.get("owned_by_profile") or self.job.owner_id),
                current_stage=Stage(row.get("current_stage") or Stage.ENRICHMENT.value),
                stage_cursor=row.get("stage_cursor"),
                counters=counters,
            )
        except (ValueError, TypeError) as exc:
            logger.warning("Ignoring unreadable progress on pipeline job %s: %s", self.job.id, exc)
            return None
