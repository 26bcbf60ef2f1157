"""Pipeline drivers, state machine and progress stores."""

from .controller import ControllerRegistry, PipelineController
from .progress_store import JobProgressStore, LocalProgressStore, ProgressStore
from .state_machine import PipelinePhase, PipelineStateMachine, Transition
from .step_driver import PipelineStepDriver

__all__ = [
    "ControllerRegistry",
    "JobProgressStore",
    "LocalProgressStore",
    "PipelineController",
    "PipelinePhase",
    "PipelineStateMachine",
    "PipelineStepDriver",
    "ProgressStore",
    "Transition",
]
