"""Client-driven pipeline driver with start/resume/pause/stop controls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from ..contracts import (
    NoCheckpointError,
    PipelineAlreadyRunningError,
    PipelineProgress,
    PipelineState,
    RunSummary,
    Stage,
    StageResult,
)
from ..contracts.config import PipelineConfig
from .progress_store import ProgressStore

logger = logging.getLogger(__name__)

ProgressListener = Callable[[PipelineProgress], None]


class PipelineController:
    """Runs an owner's enrolled contacts to completion in small batches.

    Control flags live on the instance, so controllers for different
    owners never share pause or abort state. Progress is published to
    subscribers only after the checkpoint for a batch has been saved.
    """

    def __init__(
        self,
        *,
        owner_id: Optional[str],
        store: Any,
        runner: Any,
        progress_store: ProgressStore,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.owner_id = owner_id
        self.store = store
        self.runner = runner
        self.progress_store = progress_store
        self.config = config or PipelineConfig()

        self._running = False
        self._paused = False
        self._abort = False
        self._resume_gate: Optional[asyncio.Event] = None
        self._stop_signal: Optional[asyncio.Event] = None
        self._listeners: List[ProgressListener] = []
        self._state: Optional[PipelineState] = None
        self._current_stage: Optional[Stage] = None

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    async def start(self) -> RunSummary:
        """Start a fresh run, discarding any saved checkpoint.

        Raises:
            PipelineAlreadyRunningError: If a run is already active
        """
        self._claim()
        try:
            await asyncio.to_thread(self.progress_store.save, None)
            contact_ids = await asyncio.to_thread(
                self.store.fetch_enrollable_ids,
                self.owner_id,
                self.config.enrollment_page_size,
            )
            state = PipelineState.enroll(self.owner_id, contact_ids)
            await asyncio.to_thread(self.progress_store.save, state)
            logger.info("Starting pipeline for owner %s with %d contacts", self.owner_id, state.total)
            return await self._drive(state)
        finally:
            self._release()

    async def resume(self) -> RunSummary:
        """Continue the saved run with only the unprocessed contacts.

        Raises:
            PipelineAlreadyRunningError: If a run is already active
            NoCheckpointError: If no readable checkpoint exists
        """
        if self._running:
            raise PipelineAlreadyRunningError(f"pipeline for owner {self.owner_id} is already running")
        state = await asyncio.to_thread(self.progress_store.load)
        if state is None:
            raise NoCheckpointError(f"no checkpoint to resume for owner {self.owner_id}")
        self._claim()
        try:
            logger.info(
                "Resuming pipeline for owner %s: %d of %d already processed",
                self.owner_id,
                len(state.processed_ids),
                state.total,
            )
            return await self._drive(state)
        finally:
            self._release()

    def pause_resume(self) -> bool:
        """Toggle the pause flag and return the new value."""
        self.set_paused(not self._paused)
        return self._paused

    def set_paused(self, paused: bool) -> None:
        self._paused = paused
        if self._resume_gate is not None:
            if paused:
                self._resume_gate.clear()
            else:
                self._resume_gate.set()
        logger.info("Pipeline for owner %s %s", self.owner_id, "paused" if paused else "resumed")

    def stop(self) -> None:
        """Request a cooperative stop; a paused loop wakes up to observe it."""
        self._abort = True
        self._paused = False
        if self._resume_gate is not None:
            self._resume_gate.set()
        if self._stop_signal is not None:
            self._stop_signal.set()
        logger.info("Stop requested for owner %s", self.owner_id)

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a progress listener and return an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> PipelineProgress:
        state = self._state if self._state is not None else self.progress_store.load()
        return PipelineProgress.from_state(
            state,
            owner_id=self.owner_id,
            running=self._running,
            paused=self._paused,
            batch_size=self.config.client_batch_size,
            current_stage=self._current_stage,
        )

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------
    def _claim(self) -> None:
        if self._running:
            raise PipelineAlreadyRunningError(f"pipeline for owner {self.owner_id} is already running")
        self._running = True
        self._abort = False
        self._resume_gate = asyncio.Event()
        self._stop_signal = asyncio.Event()
        if not self._paused:
            self._resume_gate.set()

    def _release(self) -> None:
        self._running = False
        self._paused = False
        self._abort = False
        self._resume_gate = None
        self._stop_signal = None
        self._current_stage = None

    async def _drive(self, state: PipelineState) -> RunSummary:
        batch_size = self.config.client_batch_size
        self._state = state
        self._publish()
        stopped = False

        while True:
            if self._abort:
                stopped = True
                break
            if not self._resume_gate.is_set():
                logger.info("Pipeline for owner %s waiting while paused", self.owner_id)
                await self._resume_gate.wait()
                if self._abort:
                    stopped = True
                    break

            window = state.remaining_ids()[:batch_size]
            if not window:
                break

            results: List[StageResult] = []
            for stage in self.config.client_stages:
                self._current_stage = stage
                result = await self.runner.run(
                    stage,
                    self.owner_id,
                    contact_ids=window,
                    page_size=batch_size,
                )
                results.append(result)

            state.record_batch(window, results)
            await asyncio.to_thread(self.progress_store.save, state)
            self._publish()
            logger.info(
                "Batch %d/%d done for owner %s (%d/%d contacts)",
                -(-len(state.processed_ids) // batch_size),
                -(-state.total // batch_size),
                self.owner_id,
                len(state.processed_ids),
                state.total,
            )

            if results[-1].completed or not state.remaining_ids():
                break
            await self._wait_between_batches()

        await asyncio.to_thread(self.progress_store.save, None)
        summary = RunSummary(
            owner_id=self.owner_id,
            processed=len(state.processed_ids),
            total=state.total,
            counters={stage: counters.model_copy() for stage, counters in state.counters.items()},
            stopped_early=stopped,
        )
        logger.info(
            "Pipeline %s for owner %s: %d of %d contacts processed",
            "stopped" if stopped else "complete",
            self.owner_id,
            summary.processed,
            summary.total,
        )
        return summary

    async def _wait_between_batches(self) -> None:
        delay = self.config.client_batch_delay_seconds
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._stop_signal.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("Progress listener failed")


class ControllerRegistry:
    """One controller per owner so the running guard covers every caller."""

    def __init__(self, factory: Callable[[Optional[str]], PipelineController]) -> None:
        self._factory = factory
        self._controllers: Dict[Optional[str], PipelineController] = {}

    def get(self, owner_id: Optional[str]) -> PipelineController:
        controller = self._controllers.get(owner_id)
        if controller is None:
            controller = self._factory(owner_id)
            self._controllers[owner_id] = controller
        return controller

    def running(self) -> List[PipelineController]:
        return [controller for controller in self._controllers.values() if controller.is_running]
