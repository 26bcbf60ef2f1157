import pytest

from src.functions.contact_pipeline.core.contracts import Stage
from src.functions.contact_pipeline.core.orchestration.config_loader import (
    build_pipeline_config,
    build_settings,
    build_supabase_settings,
)
from src.shared.utils.config_validator import ConfigurationError

PIPELINE_ENV = (
    "PIPELINE_PAGE_SIZE",
    "PIPELINE_CLIENT_BATCH_SIZE",
    "PIPELINE_CLIENT_BATCH_DELAY",
    "PIPELINE_CLIENT_STAGES",
    "PIPELINE_INCLUDE_EMBEDDING",
    "PIPELINE_MAX_EXECUTION_SECONDS",
    "PIPELINE_ERROR_THRESHOLD",
    "PIPELINE_LEASE_SECONDS",
    "PIPELINE_MIN_PROFILE_TEXT_LENGTH",
    "PIPELINE_BIO_MODE",
    "PIPELINE_RESEARCH_INVESTORS",
    "PIPELINE_CHECKPOINT_PATH",
    "PIPELINE_DRY_RUN",
    "PIPELINE_OWNER_ID",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_SCHEMA",
    "CONTACTS_TABLE",
    "THESES_TABLE",
    "PIPELINE_JOBS_TABLE",
    "OPENAI_API_KEY",
    "OPENAI_CHAT_MODEL",
    "OPENAI_TIMEOUT",
    "OPENAI_MAX_RETRIES",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in PIPELINE_ENV:
        monkeypatch.delenv(name, raising=False)


def _credentials(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-role-key-123")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


def test_defaults_match_operational_limits():
    config = build_pipeline_config()

    assert config.page_size == 5
    assert config.client_batch_size == 3
    assert config.client_batch_delay_seconds == 3.0
    assert config.client_stages == [Stage.ENRICHMENT, Stage.EXTRACTION]
    assert config.max_execution_seconds == 50.0
    assert config.error_threshold == 5
    assert config.stage_settings(Stage.ENRICHMENT).group_size == 3
    assert config.stage_settings(Stage.ENRICHMENT).group_delay_seconds == 3.0
    assert config.stage_settings(Stage.EMBEDDING).group_size == 5
    assert not config.dry_run


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PIPELINE_PAGE_SIZE", "10")
    monkeypatch.setenv("PIPELINE_CLIENT_STAGES", "extraction, enrichment")
    monkeypatch.setenv("PIPELINE_INCLUDE_EMBEDDING", "yes")
    monkeypatch.setenv("PIPELINE_BIO_MODE", "GENERATE")
    monkeypatch.setenv("PIPELINE_DRY_RUN", "on")

    config = build_pipeline_config()

    assert config.page_size == 10
    assert config.client_stages == [Stage.ENRICHMENT, Stage.EXTRACTION, Stage.EMBEDDING]
    assert config.bio_mode == "generate"
    assert config.dry_run


def test_explicit_overrides_win_and_none_falls_back(monkeypatch):
    monkeypatch.setenv("PIPELINE_PAGE_SIZE", "10")

    config = build_pipeline_config(
        {"page_size": None, "max_execution_seconds": 20, "client_stages": [Stage.EMBEDDING], "dry_run": True}
    )

    assert config.page_size == 10
    assert config.max_execution_seconds == 20.0
    assert config.client_stages == [Stage.EMBEDDING]
    assert config.dry_run


@pytest.mark.parametrize(
    "name, value",
    [
        ("PIPELINE_PAGE_SIZE", "zero"),
        ("PIPELINE_PAGE_SIZE", "500"),
        ("PIPELINE_CLIENT_STAGES", "enrichment,summaries"),
        ("PIPELINE_BIO_MODE", "guess"),
        ("PIPELINE_DRY_RUN", "maybe"),
    ],
)
def test_invalid_values_raise_configuration_error(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError):
        build_pipeline_config()


def test_supabase_settings_require_url():
    with pytest.raises(ConfigurationError, match="SUPABASE_URL"):
        build_supabase_settings()


def test_supabase_key_falls_back_to_anon_variable(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "anon-key-1234567")
    monkeypatch.setenv("CONTACTS_TABLE", "crm_contacts")

    settings = build_supabase_settings()

    assert settings.key == "anon-key-1234567"
    assert settings.contacts_table == "crm_contacts"
    assert settings.jobs_table == "pipeline_jobs"


def test_build_settings_reads_owner_and_nested_overrides(monkeypatch):
    _credentials(monkeypatch)
    monkeypatch.setenv("PIPELINE_OWNER_ID", "owner-env")

    settings = build_settings({"pipeline": {"page_size": 7}, "openai": {"chat_model": "gpt-test"}})

    assert settings.owner_id == "owner-env"
    assert settings.pipeline.page_size == 7
    assert settings.openai.chat_model == "gpt-test"
    assert settings.openai.api_key == "sk-test"
    assert build_settings(owner_id="owner-cli").owner_id == "owner-cli"


def test_build_settings_requires_openai_key(monkeypatch):
    _credentials(monkeypatch)
    monkeypatch.delenv("OPENAI_API_KEY")

    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        build_settings()
