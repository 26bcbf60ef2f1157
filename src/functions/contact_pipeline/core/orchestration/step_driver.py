"""Scheduled single-step driver: one Stage Runner call per owner per invocation."""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..contracts import JobStatus, PipelineState, StepResult
from ..contracts.config import PipelineConfig
from ..contracts.pipeline_state import utc_now
from ..db.pipeline_job_store import JobRecord
from ..monitoring.error_handler import ErrorHandler
from .progress_store import JobProgressStore
from .state_machine import PipelineStateMachine

logger = logging.getLogger(__name__)


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class PipelineStepDriver:
    """Advances every schedulable pipeline job by one step within a time budget.

    Each step holds the job lease, runs exactly one page of the job's
    current stage from its persisted cursor, applies the state machine
    transition and persists counters, stage, cursor and status before the
    lease is released. ``clock`` must be the same clock the Stage Runner
    uses for its deadline checks.
    """

    def __init__(
        self,
        *,
        contact_store: Any,
        job_store: Any,
        runner: Any,
        config: Optional[PipelineConfig] = None,
        state_machine: Optional[PipelineStateMachine] = None,
        error_handler: Optional[ErrorHandler] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
        worker_id: Optional[str] = None,
    ) -> None:
        self.contact_store = contact_store
        self.job_store = job_store
        self.runner = runner
        self.config = config or PipelineConfig()
        self.state_machine = state_machine or PipelineStateMachine(self.config.error_threshold)
        self.errors = error_handler or ErrorHandler()
        self._clock = clock
        self._now = now
        self.worker_id = worker_id or default_worker_id()

    async def run_invocation(self, owner_id: Optional[str] = None) -> Dict[str, Any]:
        """Step each schedulable job until the wall-clock budget is spent.

        Args:
            owner_id: Restrict the invocation to one owner's job

        Returns:
            Serialisable summary with per-owner step results and errors
        """
        self.errors.clear()
        started = self._clock()
        deadline = started + self.config.max_execution_seconds
        jobs: List[JobRecord] = await asyncio.to_thread(self.job_store.list_schedulable, owner_id)
        if not jobs:
            logger.info("No active pipelines to process")

        results: List[StepResult] = []
        for job in jobs:
            if self._clock() >= deadline:
                logger.info("Time budget spent, leaving %d job(s) for the next invocation", len(jobs) - len(results))
                break
            results.append(await self.step(job, deadline))

        return {
            "success": True,
            "processed": len(results),
            "results": [result.to_dict() for result in results],
            "errors": self.errors.as_dict(),
            "elapsed_seconds": round(self._clock() - started, 3),
        }

    async def step(self, job: JobRecord, deadline: float) -> StepResult:
        token = f"{self.worker_id}:{uuid.uuid4().hex}"
        acquired = await asyncio.to_thread(
            self.job_store.acquire_lease, job, token, self._now(), self.config.lease_seconds
        )
        if not acquired:
            return StepResult(owner_id=job.owner_id, status=job.status, skipped_reason="leased")
        try:
            return await self._step_locked(job, deadline)
        finally:
            await asyncio.to_thread(self.job_store.release_lease, job, token)

    async def _step_locked(self, job: JobRecord, deadline: float) -> StepResult:
        progress = JobProgressStore(self.job_store, job)
        stage = job.current_stage
        try:
            if job.status == JobStatus.IDLE.value:
                has_work = await asyncio.to_thread(self.contact_store.has_pending_work, job.owner_id)
                if not has_work:
                    logger.debug("Owner %s is idle with no new work", job.owner_id)
                    return StepResult(
                        owner_id=job.owner_id,
                        status=JobStatus.IDLE.value,
                        skipped_reason="no pending work",
                    )
                logger.info("New work for idle owner %s, starting a new cycle", job.owner_id)
                await asyncio.to_thread(progress.save, None)

            state = await asyncio.to_thread(progress.load)
            if state is None:
                state = PipelineState(owner_id=job.owner_id)
            stage = state.current_stage
            await asyncio.to_thread(self.job_store.mark_running, job, self._now())

            result = await self.runner.run(
                stage,
                job.owner_id,
                cursor=state.stage_cursor,
                page_size=self.config.page_size,
                deadline=deadline,
            )

            has_more_work = None
            if self.state_machine.requires_work_check(result):
                has_more_work = await asyncio.to_thread(self.contact_store.has_pending_work, job.owner_id)
            transition = self.state_machine.advance(result, has_more_work)

            state.apply_stage_result(result)
            state.current_stage = transition.stage
            await asyncio.to_thread(progress.save, state)
            completed_at = self._now() if transition.status is JobStatus.IDLE else None
            await asyncio.to_thread(
                self.job_store.finish_step, job, transition.status, completed_at=completed_at
            )
            logger.info(
                "Owner %s: %s processed=%d succeeded=%d failed=%d -> %s",
                job.owner_id,
                stage.value,
                result.processed,
                result.succeeded,
                result.failed,
                transition.phase.value,
            )
            return StepResult(
                owner_id=job.owner_id,
                status=transition.status.value,
                stage=stage,
                next_stage=transition.stage,
                result=result,
            )
        except Exception as exc:  # noqa: BLE001 - recorded on the job row
            logger.exception("Pipeline step failed for owner %s", job.owner_id)
            self.errors.record(job.owner_id, stage.value, exc)
            error_count = job.error_count + 1
            current = JobStatus.IDLE if job.status == JobStatus.IDLE.value else JobStatus.RUNNING
            status = self.state_machine.on_error(error_count, current)
            await asyncio.to_thread(self.job_store.record_failure, job, str(exc), error_count, status)
            return StepResult(
                owner_id=job.owner_id,
                status=status.value,
                stage=stage,
                error=str(exc),
            )
