"""Failure tracking for batch processing."""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class FailureTracker:
    """Records per-item failures grouped by stage.

    Failures are kept for reporting only; a failed item is not retried in
    the same pass and stays eligible for the next one.

    Example:
        tracker = FailureTracker()
        tracker.record_failure("enrichment", contact.id, "empty response")
        tracker.save(Path("./failures.json"))
    """

    def __init__(self) -> None:
        self.failures: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.attempt_counts: Dict[str, Dict[str, int]] = defaultdict(dict)
        self.lock = threading.Lock()

    def record_failure(self, stage: str, item_id: str, error: str, tb: str = "") -> int:
        """Record a processing failure.

        Returns:
            Number of failures recorded for this item/stage pair
        """
        with self.lock:
            stage_attempts = self.attempt_counts[stage]
            stage_attempts[item_id] = stage_attempts.get(item_id, 0) + 1
            self.failures[stage].append(
                {
                    "item_id": item_id,
                    "error": str(error),
                    "traceback": tb,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "attempt": stage_attempts[item_id],
                }
            )
            return stage_attempts[item_id]

    def get_attempts(self, stage: str, item_id: str) -> int:
        with self.lock:
            return self.attempt_counts.get(stage, {}).get(item_id, 0)

    def failed_ids(self, stage: str) -> List[str]:
        """Return distinct failed item ids for a stage in first-failure order."""
        with self.lock:
            return list(dict.fromkeys(entry["item_id"] for entry in self.failures.get(stage, [])))

    def save(self, filepath: Path) -> None:
        """Atomically save failures to a JSON file."""
        with self.lock:
            if not self.failures:
                logger.info("No failures to save")
                return
            temp_path = filepath.with_suffix(".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(dict(self.failures), f, indent=2)
            temp_path.replace(filepath)
            total_failures = sum(len(v) for v in self.failures.values())
            logger.info("Saved %d failures to %s", total_failures, filepath)

    def get_summary(self) -> Dict[str, int]:
        """Get failure counts by stage."""
        with self.lock:
            return {stage: len(failures) for stage, failures in self.failures.items()}
