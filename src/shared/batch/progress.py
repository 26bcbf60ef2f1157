"""Per-page progress logging for stage runs."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Counts unit outcomes for one page of a stage and logs a rate line.

    Example:
        tracker = ProgressTracker(total_items=len(page), stage="enrichment")
        for outcome in outcomes:
            tracker.increment(success=outcome.success)
        tracker.log_progress({"skipped": 0})
    """

    def __init__(self, total_items: int, stage: str, *, clock: Callable[[], float] = time.monotonic):
        self.total_items = total_items
        self.stage = stage
        self._clock = clock
        self.started = clock()
        self.succeeded = 0
        self.failed = 0
        self.lock = threading.Lock()

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def increment(self, success: bool = True) -> None:
        with self.lock:
            if success:
                self.succeeded += 1
            else:
                self.failed += 1

    def log_progress(self, extra_stats: Optional[Dict[str, Any]] = None) -> None:
        """Log one summary line: counts, units per minute, then any extras."""
        with self.lock:
            elapsed = self._clock() - self.started
            per_minute = self.processed / elapsed * 60 if elapsed > 0 else 0.0
            parts = [
                f"[{self.stage}] {self.processed}/{self.total_items} units",
                f"ok={self.succeeded}",
                f"failed={self.failed}",
                f"{per_minute:.1f}/min",
            ]
            parts.extend(f"{key}={value}" for key, value in (extra_stats or {}).items())
        logger.info(" | ".join(parts))
