"""Error aggregation for pipeline invocations."""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RecordedError:
    """Structured representation of a captured pipeline error."""

    owner_id: str
    stage: str
    message: str
    exception_type: str
    traceback: Optional[str]


class ErrorHandler:
    """Collects step errors for the invocation response."""

    def __init__(self) -> None:
        self._errors: List[RecordedError] = []

    def record(self, owner_id: str, stage: str, exc: BaseException) -> None:
        tb = "".join(traceback.format_exception(exc)).strip()
        logger.debug("Recording error at stage %s for owner %s: %s", stage, owner_id, exc)
        self._errors.append(
            RecordedError(
                owner_id=owner_id,
                stage=stage,
                message=str(exc),
                exception_type=type(exc).__name__,
                traceback=tb or None,
            )
        )

    def clear(self) -> None:
        self._errors.clear()

    @property
    def errors(self) -> List[RecordedError]:
        return list(self._errors)

    def as_dict(self) -> List[dict]:
        """Serialise errors for JSON responses."""

        return [
            {
                "owner_id": error.owner_id,
                "stage": error.stage,
                "message": error.message,
                "exception_type": error.exception_type,
                "traceback": error.traceback,
            }
            for error in self._errors
        ]
