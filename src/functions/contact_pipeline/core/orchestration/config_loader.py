"""Helpers to construct pipeline configuration from the environment."""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional

from src.shared.utils.config_validator import (
    ConfigurationError,
    check_config_override,
    require_any_env,
    require_env,
    validate_bool_env,
    validate_choice_env,
    validate_float_env,
    validate_int_env,
)

from ..contracts import Stage
from ..contracts.config import (
    ContactPipelineSettings,
    OpenAISettings,
    PipelineConfig,
    SupabaseSettings,
)

logger = logging.getLogger(__name__)


def _override(overrides: Dict[str, object], key: str, fallback):
    value = overrides.get(key)
    return fallback() if value is None else value


def _stages_from_env(name: str, default: List[Stage]) -> List[Stage]:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return [Stage(part.strip().lower()) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise ConfigurationError(
            f"Invalid stage list for {name}: '{raw}'\n"
            f"Allowed stages: {', '.join(stage.value for stage in Stage)}"
        )


def build_pipeline_config(overrides: Optional[Dict[str, object]] = None) -> PipelineConfig:
    overrides = overrides or {}
    client_stages = overrides.get("client_stages")
    if client_stages is None:
        client_stages = _stages_from_env("PIPELINE_CLIENT_STAGES", [Stage.ENRICHMENT, Stage.EXTRACTION])
        include_embedding = validate_bool_env("PIPELINE_INCLUDE_EMBEDDING", False)
        if include_embedding and Stage.EMBEDDING not in client_stages:
            client_stages = [*client_stages, Stage.EMBEDDING]

    return PipelineConfig(
        page_size=int(_override(overrides, "page_size", lambda: validate_int_env("PIPELINE_PAGE_SIZE", 5, 1, 100))),
        client_batch_size=int(
            _override(overrides, "client_batch_size", lambda: validate_int_env("PIPELINE_CLIENT_BATCH_SIZE", 3, 1, 50))
        ),
        client_batch_delay_seconds=float(
            _override(
                overrides,
                "client_batch_delay_seconds",
                lambda: validate_float_env("PIPELINE_CLIENT_BATCH_DELAY", 3.0, 0.0),
            )
        ),
        client_stages=client_stages,
        max_execution_seconds=float(
            _override(
                overrides,
                "max_execution_seconds",
                lambda: validate_float_env("PIPELINE_MAX_EXECUTION_SECONDS", 50.0, 1.0),
            )
        ),
        error_threshold=int(
            _override(overrides, "error_threshold", lambda: validate_int_env("PIPELINE_ERROR_THRESHOLD", 5, 1))
        ),
        lease_seconds=int(
            _override(overrides, "lease_seconds", lambda: validate_int_env("PIPELINE_LEASE_SECONDS", 120, 10))
        ),
        min_profile_text_length=int(
            _override(
                overrides,
                "min_profile_text_length",
                lambda: validate_int_env("PIPELINE_MIN_PROFILE_TEXT_LENGTH", 20, 1),
            )
        ),
        bio_mode=str(
            _override(
                overrides,
                "bio_mode",
                lambda: validate_choice_env("PIPELINE_BIO_MODE", ["research", "generate"], "research"),
            )
        ),
        research_investor_notes=bool(
            _override(
                overrides,
                "research_investor_notes",
                lambda: validate_bool_env("PIPELINE_RESEARCH_INVESTORS", True),
            )
        ),
        checkpoint_path=str(
            _override(
                overrides,
                "checkpoint_path",
                lambda: os.getenv("PIPELINE_CHECKPOINT_PATH", ".pipeline/checkpoints.json"),
            )
        ),
        dry_run=bool(overrides.get("dry_run") or validate_bool_env("PIPELINE_DRY_RUN", False)),
    )


def build_supabase_settings(overrides: Optional[Dict[str, object]] = None) -> SupabaseSettings:
    """Build Supabase settings with validation."""
    overrides = overrides or {}
    try:
        url = overrides.get("url") or require_env("SUPABASE_URL", "Supabase project URL")
        key = overrides.get("key") or require_any_env(
            ["SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY"],
            "Supabase service role key",
        )
    except ConfigurationError as exc:
        raise ConfigurationError(
            f"{exc}\nRequired for the contact pipeline. "
            "Set it in the environment or a .env file."
        )

    return SupabaseSettings(
        url=url,
        key=key,
        schema_name=overrides.get("schema") or os.getenv("SUPABASE_SCHEMA", "public"),
        contacts_table=overrides.get("contacts_table") or os.getenv("CONTACTS_TABLE", "contacts"),
        theses_table=overrides.get("theses_table") or os.getenv("THESES_TABLE", "theses"),
        jobs_table=overrides.get("jobs_table") or os.getenv("PIPELINE_JOBS_TABLE", "pipeline_jobs"),
    )


def build_openai_settings(overrides: Optional[Dict[str, object]] = None) -> OpenAISettings:
    overrides = overrides or {}
    api_key = check_config_override(overrides.get("api_key"), "OPENAI_API_KEY", required=True)
    return OpenAISettings(
        api_key=api_key,
        chat_model=overrides.get("chat_model") or os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini"),
        research_model=overrides.get("research_model") or os.getenv("OPENAI_RESEARCH_MODEL", "gpt-4o"),
        embedding_model=overrides.get("embedding_model")
        or os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
        timeout_seconds=validate_float_env("OPENAI_TIMEOUT", 30.0, 1.0),
        max_retries=validate_int_env("OPENAI_MAX_RETRIES", 3, 1, 10),
    )


def build_settings(
    overrides: Optional[Dict[str, object]] = None,
    *,
    owner_id: Optional[str] = None,
) -> ContactPipelineSettings:
    """Build every settings block; raises ConfigurationError on missing env."""
    overrides = overrides or {}
    settings = ContactPipelineSettings(
        supabase=build_supabase_settings(overrides.get("supabase")),
        openai=build_openai_settings(overrides.get("openai")),
        pipeline=build_pipeline_config(overrides.get("pipeline")),
        owner_id=owner_id or os.getenv("PIPELINE_OWNER_ID") or None,
    )
    logger.debug("Pipeline settings: %s", settings.pipeline.snapshot())
    return settings
