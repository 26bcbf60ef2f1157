"""Configuration models for the contact pipeline."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator

from .contact import Stage


class SupabaseSettings(BaseModel):
    """Settings required to interact with Supabase tables."""

    url: HttpUrl = Field(..., description="Supabase project URL")
    key: str = Field(..., min_length=10, description="Supabase service role or anon key")
    schema_name: str = Field(default="public", description="Target database schema")
    contacts_table: str = Field(default="contacts")
    theses_table: str = Field(default="theses")
    jobs_table: str = Field(default="pipeline_jobs")


class OpenAISettings(BaseModel):
    """Models and request limits for the remote AI calls."""

    api_key: str = Field(..., min_length=1)
    chat_model: str = Field(default="gpt-4o-mini")
    research_model: str = Field(default="gpt-4o")
    embedding_model: str = Field(default="text-embedding-3-small")
    embedding_dimensions: int = Field(default=1536, ge=1)
    max_embedding_chars: int = Field(
        default=8000,
        ge=100,
        description="Embedding input is truncated to this many characters",
    )
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1, le=10)


class StageSettings(BaseModel):
    """Concurrency and pacing for one stage."""

    group_size: int = Field(default=5, ge=1, le=20)
    group_delay_seconds: float = Field(default=2.0, ge=0)


def _default_stage_settings() -> Dict[Stage, StageSettings]:
    return {
        Stage.ENRICHMENT: StageSettings(group_size=3, group_delay_seconds=3.0),
        Stage.EXTRACTION: StageSettings(group_size=5, group_delay_seconds=2.0),
        Stage.EMBEDDING: StageSettings(group_size=5, group_delay_seconds=2.0),
    }


class PipelineConfig(BaseModel):
    """Operational configuration shared by both pipeline drivers."""

    page_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Contacts fetched per scheduled Stage Runner call",
    )
    stages: Dict[Stage, StageSettings] = Field(default_factory=_default_stage_settings)
    client_batch_size: int = Field(default=3, ge=1, le=50)
    client_batch_delay_seconds: float = Field(default=3.0, ge=0)
    client_stages: List[Stage] = Field(
        default_factory=lambda: [Stage.ENRICHMENT, Stage.EXTRACTION],
    )
    enrollment_page_size: int = Field(default=1000, ge=1, le=1000)
    max_execution_seconds: float = Field(
        default=50.0,
        gt=0,
        description="Wall-clock budget for one scheduled invocation",
    )
    error_threshold: int = Field(default=5, ge=1)
    lease_seconds: int = Field(default=120, ge=10)
    min_profile_text_length: int = Field(default=20, ge=1)
    bio_mode: Literal["research", "generate"] = Field(default="research")
    research_investor_notes: bool = Field(default=True)
    checkpoint_path: str = Field(default=".pipeline/checkpoints.json")
    dry_run: bool = Field(default=False)

    @field_validator("client_stages")
    @classmethod
    def _validate_client_stages(cls, value: List[Stage]) -> List[Stage]:
        if not value:
            msg = "client_stages must name at least one stage"
            raise ValueError(msg)
        ordered = [stage for stage in Stage if stage in value]
        return ordered

    @field_validator("stages")
    @classmethod
    def _fill_stage_settings(cls, value: Dict[Stage, StageSettings]) -> Dict[Stage, StageSettings]:
        defaults = _default_stage_settings()
        defaults.update(value)
        return defaults

    def stage_settings(self, stage: Stage) -> StageSettings:
        return self.stages[stage]

    def snapshot(self) -> Dict[str, object]:
        """Return a serialisable snapshot for reporting."""

        return self.model_dump(mode="json")


class ContactPipelineSettings(BaseModel):
    """Aggregate of everything needed to build the pipeline services."""

    supabase: SupabaseSettings
    openai: OpenAISettings
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    owner_id: Optional[str] = None
