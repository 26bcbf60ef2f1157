"""Shared batch processing infrastructure.

Provides generic utilities for batch processing pipelines:
- CheckpointSlot: Durable key/value checkpoint slots with atomic writes
- FailureTracker: Per-stage record of failed items
- ProgressTracker: Processing progress and rate/ETA logging
- retry_on_network_error: Network retry with exponential backoff

Usage:
    from src.shared.batch import CheckpointSlot, FailureTracker, ProgressTracker
    from src.shared.batch import retry_on_network_error
"""

from .checkpoint import CheckpointSlot
from .failure_tracker import FailureTracker
from .progress import ProgressTracker
from .retry import retry_on_network_error

__all__ = [
    "CheckpointSlot",
    "FailureTracker",
    "ProgressTracker",
    "retry_on_network_error",
]
