"""Batch unit processor: one remote AI operation for one contact."""

from __future__ import annotations

import asyncio
import logging
import traceback
from typing import Any, Callable, Dict, Optional

from src.shared.batch import FailureTracker

from ..contracts import (
    BioResearchPayload,
    ContactRecord,
    InvestorResearchPayload,
    Stage,
    ThesisPayload,
    UnitOutcome,
    UnusableResponseError,
)
from ..contracts.config import PipelineConfig
from ..llm import prompts
from ..llm.response_parser import parse_json_payload

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 5
MIN_INVESTOR_NOTES_LENGTH = 50


class BatchUnitProcessor:
    """Runs one stage operation for one contact and never raises.

    Blocking AI and storage calls run in a worker thread so a concurrency
    group can await several contacts at once.
    """

    def __init__(
        self,
        store: Any,
        ai_client: Any,
        config: Optional[PipelineConfig] = None,
        *,
        max_embedding_chars: int = 8000,
        embedding_dimensions: int = 1536,
        failure_tracker: Optional[FailureTracker] = None,
    ) -> None:
        self.store = store
        self.ai_client = ai_client
        self.config = config or PipelineConfig()
        self.max_embedding_chars = max_embedding_chars
        self.embedding_dimensions = embedding_dimensions
        self.failure_tracker = failure_tracker or FailureTracker()
        self._handlers: Dict[Stage, Callable[[ContactRecord], Dict[str, Any]]] = {
            Stage.ENRICHMENT: self._enrich,
            Stage.EXTRACTION: self._extract_thesis,
            Stage.EMBEDDING: self._embed,
        }

    async def process(self, stage: Stage, contact: ContactRecord) -> UnitOutcome:
        try:
            updates = await asyncio.to_thread(self._handlers[stage], contact)
        except Exception as exc:  # noqa: BLE001 - unit failures are counted, not raised
            message = str(exc) or type(exc).__name__
            logger.warning("[%s] %s failed: %s", contact.id, stage.value, message)
            self.failure_tracker.record_failure(stage.value, contact.id, message, traceback.format_exc())
            return UnitOutcome(contact_id=contact.id, stage=stage, success=False, error=message)
        return UnitOutcome(contact_id=contact.id, stage=stage, success=True, updates=updates)

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------
    def _enrich(self, contact: ContactRecord) -> Dict[str, Any]:
        """Fill the bio, then investor notes for investor profiles.

        Investor research runs even when the bio comes back empty; any notes
        it finds are written, but the unit still fails so the contact stays
        eligible for enrichment.
        """
        bio_error: Optional[UnusableResponseError] = None
        try:
            if self.config.bio_mode == "generate":
                updates = self._generate_bio(contact)
            else:
                updates = self._research_bio(contact)
        except UnusableResponseError as exc:
            bio_error = exc
            updates = {}

        if self._should_research_investor(contact):
            notes = self._research_investor_notes(contact)
            if notes:
                updates["investor_notes"] = notes

        if updates:
            self.store.update_contact(contact.id, updates)
        if bio_error is not None:
            raise bio_error
        logger.debug("[%s] enriched fields: %s", contact.id, sorted(updates))
        return updates

    def _generate_bio(self, contact: ContactRecord) -> Dict[str, Any]:
        text = self.ai_client.complete(prompts.build_bio_prompt(contact), max_tokens=200, temperature=0.7)
        if not text:
            raise UnusableResponseError("bio generation returned no content")
        return {"bio": text}

    def _research_bio(self, contact: ContactRecord) -> Dict[str, Any]:
        raw = self.ai_client.web_research(
            prompts.BIO_RESEARCH_SYSTEM_PROMPT,
            prompts.build_bio_research_query(contact),
        )
        outcome = parse_json_payload(raw, BioResearchPayload)
        if not outcome.ok:
            raise UnusableResponseError(f"bio research unparsable: {outcome.error}")
        payload = outcome.value
        bio = (payload.bio or "").strip()
        if not payload.found or not bio:
            raise UnusableResponseError("bio research found no information")

        updates: Dict[str, Any] = {"bio": bio}
        title = (payload.title or "").strip()
        if title and (not contact.title or len(contact.title) < MIN_TITLE_LENGTH):
            updates["title"] = title
        company = (payload.company or "").strip()
        if company and not contact.company:
            updates["company"] = company
        return updates

    def _should_research_investor(self, contact: ContactRecord) -> bool:
        if not self.config.research_investor_notes or not contact.is_investor_profile:
            return False
        notes = contact.investor_notes or ""
        return len(notes) < MIN_INVESTOR_NOTES_LENGTH

    def _research_investor_notes(self, contact: ContactRecord) -> Optional[str]:
        """Best effort: a failure here keeps the bio result and is only recorded."""
        try:
            raw = self.ai_client.web_research(
                prompts.INVESTOR_RESEARCH_SYSTEM_PROMPT,
                prompts.build_investor_research_query(contact),
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("[%s] investor research failed: %s", contact.id, exc)
            self.failure_tracker.record_failure("investor_research", contact.id, str(exc))
            return None

        outcome = parse_json_payload(raw, InvestorResearchPayload)
        if not outcome.ok or not outcome.value.found or not outcome.value.thesis_summary:
            logger.info("[%s] investor research returned nothing usable", contact.id)
            return None

        # Short existing notes are replaced
        return outcome.value.as_notes()

    # ------------------------------------------------------------------
    # Thesis extraction
    # ------------------------------------------------------------------
    def _extract_thesis(self, contact: ContactRecord) -> Dict[str, Any]:
        profile = contact.profile_text("\n")
        if not profile:
            raise UnusableResponseError("no profile text to extract a thesis from")
        raw = self.ai_client.complete(
            prompts.build_thesis_prompt(profile),
            system_prompt=prompts.THESIS_SYSTEM_PROMPT,
            max_tokens=500,
            temperature=0.3,
            json_mode=True,
        )
        outcome = parse_json_payload(raw, ThesisPayload)
        if not outcome.ok:
            raise UnusableResponseError(f"thesis unparsable: {outcome.error}")
        row = outcome.value.to_row(contact.id)
        self.store.upsert_thesis(row)
        return row

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------
    def _embed(self, contact: ContactRecord) -> Dict[str, Any]:
        text = contact.profile_text(" ")
        if len(text) < self.config.min_profile_text_length:
            raise UnusableResponseError(
                f"profile text too short to embed ({len(text)} < {self.config.min_profile_text_length})"
            )
        vector = self.ai_client.embed(text[: self.max_embedding_chars])
        if len(vector) != self.embedding_dimensions:
            raise UnusableResponseError(
                f"embedding has {len(vector)} dimensions, expected {self.embedding_dimensions}"
            )
        updates = {"bio_embedding": vector}
        self.store.update_contact(contact.id, updates)
        return updates
