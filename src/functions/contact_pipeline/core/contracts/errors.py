"""Exception types raised by the contact pipeline."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for contact pipeline failures."""


class PipelineControlError(PipelineError):
    """Raised when a control operation is not valid in the current state."""


class PipelineAlreadyRunningError(PipelineControlError):
    """Raised when start/resume is requested while a run is active."""


class NoCheckpointError(PipelineControlError):
    """Raised when resume is requested without a saved checkpoint."""


class AIServiceError(PipelineError):
    """Raised when the remote model call fails after all retries."""


class UnusableResponseError(PipelineError):
    """Raised when a model reply is empty, malformed or reports nothing found."""


class LeaseUnavailableError(PipelineError):
    """Raised when another worker holds the pipeline job lease."""
