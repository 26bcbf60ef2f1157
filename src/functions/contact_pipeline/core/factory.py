"""Wiring of stores, AI client, runner and drivers from settings."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional

from src.shared.batch import CheckpointSlot, FailureTracker
from src.shared.db import SupabaseConfig, get_supabase_client

from .contracts.config import ContactPipelineSettings
from .db import ContactStore, PipelineJobStore
from .llm import ContactAIClient
from .orchestration.controller import ControllerRegistry, PipelineController
from .orchestration.progress_store import LocalProgressStore
from .orchestration.step_driver import PipelineStepDriver
from .processing import BatchUnitProcessor, StageRunner


@dataclass(slots=True)
class PipelineServices:
    settings: ContactPipelineSettings
    supabase: Any
    contact_store: ContactStore
    job_store: PipelineJobStore
    ai_client: Any
    processor: BatchUnitProcessor
    runner: StageRunner
    failure_tracker: FailureTracker
    controllers: Optional[ControllerRegistry] = None


def build_services(
    settings: ContactPipelineSettings,
    *,
    supabase_client: Optional[Any] = None,
    ai_client: Optional[Any] = None,
) -> PipelineServices:
    if supabase_client is None:
        supabase_client = get_supabase_client(
            SupabaseConfig(
                url=str(settings.supabase.url),
                key=settings.supabase.key,
                schema=settings.supabase.schema_name,
            )
        )
    if ai_client is None:
        ai_client = ContactAIClient(
            api_key=settings.openai.api_key,
            chat_model=settings.openai.chat_model,
            research_model=settings.openai.research_model,
            embedding_model=settings.openai.embedding_model,
            embedding_dimensions=settings.openai.embedding_dimensions,
            timeout=settings.openai.timeout_seconds,
            max_retries=settings.openai.max_retries,
        )

    pipeline = settings.pipeline
    contact_store = ContactStore(
        supabase_client,
        contacts_table=settings.supabase.contacts_table,
        theses_table=settings.supabase.theses_table,
        dry_run=pipeline.dry_run,
    )
    job_store = PipelineJobStore(supabase_client, table=settings.supabase.jobs_table)
    failure_tracker = FailureTracker()
    processor = BatchUnitProcessor(
        contact_store,
        ai_client,
        pipeline,
        max_embedding_chars=settings.openai.max_embedding_chars,
        embedding_dimensions=settings.openai.embedding_dimensions,
        failure_tracker=failure_tracker,
    )
    runner = StageRunner(contact_store, processor, pipeline, clock=time.monotonic)
    services = PipelineServices(
        settings=settings,
        supabase=supabase_client,
        contact_store=contact_store,
        job_store=job_store,
        ai_client=ai_client,
        processor=processor,
        runner=runner,
        failure_tracker=failure_tracker,
    )
    services.controllers = ControllerRegistry(lambda owner_id: _new_controller(services, owner_id))
    return services


def _new_controller(services: PipelineServices, owner_id: Optional[str]) -> PipelineController:
    pipeline = services.settings.pipeline
    slot = CheckpointSlot(pipeline.checkpoint_path)
    return PipelineController(
        owner_id=owner_id,
        store=services.contact_store,
        runner=services.runner,
        progress_store=LocalProgressStore(slot, owner_id),
        config=pipeline,
    )


def get_controller(services: PipelineServices, owner_id: Optional[str]) -> PipelineController:
    """Return the process-wide controller for an owner."""
    return services.controllers.get(owner_id)


def build_step_driver(services: PipelineServices) -> PipelineStepDriver:
    return PipelineStepDriver(
        contact_store=services.contact_store,
        job_store=services.job_store,
        runner=services.runner,
        config=services.settings.pipeline,
        clock=time.monotonic,
    )
