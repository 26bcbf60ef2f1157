"""File-backed key/value slot for durable checkpoints with atomic writes."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class CheckpointSlot:
    """Durable string slots persisted as one JSON document.

    Mirrors the ``setItem/getItem/removeItem`` shape of a browser storage
    slot so callers can keep one serialised payload per key and survive a
    process restart.

    Example:
        slot = CheckpointSlot("./checkpoints/pipeline.json")
        slot.set_item("pipeline:owner-1", payload)
        ...
        payload = slot.get_item("pipeline:owner-1")
    """

    def __init__(self, filepath: str | Path):
        self.filepath = Path(filepath)
        self.lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.filepath.exists():
            return {}
        try:
            with open(self.filepath, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Checkpoint file %s is unreadable, ignoring it: %s", self.filepath, e)
            return {}
        if not isinstance(loaded, dict):
            logger.warning("Checkpoint file %s has unexpected shape, ignoring it", self.filepath)
            return {}
        return {str(key): value for key, value in loaded.items() if isinstance(value, str)}

    def _write(self, data: Dict[str, str]) -> None:
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.filepath.with_suffix(self.filepath.suffix + ".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        temp_path.replace(self.filepath)
        logger.debug("Checkpoint flushed to %s", self.filepath)

    def get_item(self, key: str) -> Optional[str]:
        with self.lock:
            return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key`` and flush to disk atomically."""
        with self.lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove_item(self, key: str) -> None:
        with self.lock:
            data = self._read()
            if key not in data:
                return
            del data[key]
            self._write(data)
