"""Per-contact processing and per-stage batching."""

from .stage_runner import StageRunner
from .unit_processor import BatchUnitProcessor

__all__ = ["BatchUnitProcessor", "StageRunner"]
