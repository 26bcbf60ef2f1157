"""Stage runner: fetch one bounded page and fan it out in paced groups."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional

from src.shared.batch import ProgressTracker

from ..contracts import ContactRecord, Stage, StageResult
from ..contracts.config import PipelineConfig

logger = logging.getLogger(__name__)


def _chunks(items: List[ContactRecord], size: int) -> List[List[ContactRecord]]:
    return [items[start : start + size] for start in range(0, len(items), size)]


class StageRunner:
    """Processes one page of contacts for one stage.

    The page comes either from storage (contacts still needing the stage,
    ordered by id, strictly after ``cursor``) or from an explicit id window
    supplied by the client-driven driver. Contacts in a window that no
    longer need the stage are counted as skipped.
    """

    def __init__(
        self,
        store: Any,
        processor: Any,
        config: Optional[PipelineConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.processor = processor
        self.config = config or PipelineConfig()
        self._clock = clock
        self._sleep = sleep

    async def run(
        self,
        stage: Stage,
        owner_id: Optional[str],
        *,
        cursor: Optional[str] = None,
        contact_ids: Optional[List[str]] = None,
        page_size: Optional[int] = None,
        deadline: Optional[float] = None,
    ) -> StageResult:
        """Run one page for ``stage``.

        Args:
            stage: Stage to run
            owner_id: Owner scope, or None for every owner
            cursor: Resume strictly after this contact id (storage mode)
            contact_ids: Explicit id window (client-driven mode)
            page_size: Requested page size used for exhaustion detection
            deadline: ``clock()`` value after which no new group starts

        Returns:
            StageResult; ``completed`` is True when the page was shorter than
            the requested size and every group in it ran

        Raises:
            Exception: Page fetch errors propagate to the driver
        """
        if contact_ids is not None:
            size = page_size or self.config.client_batch_size
            records = await asyncio.to_thread(self.store.fetch_by_ids, contact_ids)
            page = [record for record in records if record.needs(stage)]
            fetched = len(contact_ids)
        else:
            size = page_size or self.config.page_size
            page = await asyncio.to_thread(self.store.fetch_eligible, stage, owner_id, size, cursor)
            fetched = len(page)

        result = StageResult(stage=stage, skipped=fetched - len(page) if contact_ids is not None else 0)
        result.cursor = cursor
        settings = self.config.stage_settings(stage)
        tracker = ProgressTracker(total_items=len(page), stage=stage.value)

        for index, group in enumerate(_chunks(page, settings.group_size)):
            if index > 0 and settings.group_delay_seconds > 0:
                await self._sleep(settings.group_delay_seconds)
            if deadline is not None and self._clock() >= deadline:
                result.deadline_reached = True
                logger.info(
                    "Time budget reached during %s after %d contacts", stage.value, result.processed
                )
                break

            outcomes = await asyncio.gather(
                *(self.processor.process(stage, contact) for contact in group),
                return_exceptions=True,
            )
            for contact, outcome in zip(group, outcomes):
                success = not isinstance(outcome, BaseException) and outcome.success
                if isinstance(outcome, BaseException):
                    logger.error("[%s] %s raised past the processor: %s", contact.id, stage.value, outcome)
                result.processed += 1
                result.processed_ids.append(contact.id)
                if success:
                    result.succeeded += 1
                else:
                    result.failed += 1
                    result.failed_ids.append(contact.id)
                tracker.increment(success=success)
            result.cursor = group[-1].id

        result.completed = not result.deadline_reached and fetched < size
        if page:
            tracker.log_progress(extra_stats={"skipped": result.skipped, "completed": result.completed})
        else:
            logger.debug("No %s work in page (fetched=%d, size=%d)", stage.value, fetched, size)
        return result
