import json

from src.functions.contact_pipeline.core.contracts import PipelineState, Stage, StageResult
from src.functions.contact_pipeline.core.db import JobRecord, PipelineJobStore
from src.functions.contact_pipeline.core.orchestration import JobProgressStore, LocalProgressStore
from src.functions.contact_pipeline.core.orchestration.progress_store import slot_key
from src.shared.batch import CheckpointSlot

from tests.contact_pipeline.fakes import FakeSupabaseClient


def _state():
    state = PipelineState.enroll("owner-1", ["c001", "c002", "c003", "c004"])
    state.record_batch(
        ["c001", "c002"],
        [StageResult(stage=Stage.ENRICHMENT, processed=2, succeeded=1, failed=1)],
    )
    return state


def test_local_store_round_trips_checkpoint(tmp_path):
    store = LocalProgressStore(CheckpointSlot(tmp_path / "checkpoints.json"), "owner-1")

    store.save(_state())
    loaded = LocalProgressStore(CheckpointSlot(tmp_path / "checkpoints.json"), "owner-1").load()

    assert loaded.processed_ids == ["c001", "c002"]
    assert loaded.remaining_ids() == ["c003", "c004"]
    assert loaded.counters[Stage.ENRICHMENT].processed == 2
    assert loaded.counters[Stage.EXTRACTION].processed == 0


def test_local_store_keys_are_per_owner(tmp_path):
    slot = CheckpointSlot(tmp_path / "checkpoints.json")
    LocalProgressStore(slot, "owner-1").save(_state())

    assert LocalProgressStore(slot, "owner-2").load() is None
    assert slot_key(None) == "contact-pipeline:all"


def test_saving_none_clears_checkpoint(tmp_path):
    slot = CheckpointSlot(tmp_path / "checkpoints.json")
    store = LocalProgressStore(slot, "owner-1")
    store.save(_state())

    store.save(None)

    assert store.load() is None
    assert slot.get_item(slot_key("owner-1")) is None


def test_corrupt_checkpoint_loads_as_none(tmp_path):
    slot = CheckpointSlot(tmp_path / "checkpoints.json")
    slot.set_item(slot_key("owner-1"), "{not json")

    assert LocalProgressStore(slot, "owner-1").load() is None


def test_checkpoint_with_unenrolled_ids_is_rejected(tmp_path):
    slot = CheckpointSlot(tmp_path / "checkpoints.json")
    payload = json.loads(_state().model_dump_json())
    payload["processed_ids"].append("c999")
    slot.set_item(slot_key("owner-1"), json.dumps(payload))

    assert LocalProgressStore(slot, "owner-1").load() is None


def test_unreadable_checkpoint_file_is_treated_as_empty(tmp_path):
    path = tmp_path / "checkpoints.json"
    path.write_text("garbage", encoding="utf-8")

    assert LocalProgressStore(CheckpointSlot(path), "owner-1").load() is None


def _job_store():
    client = FakeSupabaseClient(
        {
            "pipeline_jobs": [
                {
                    "id": "job-1",
                    "owned_by_profile": "owner-1",
                    "enabled": True,
                    "status": "running",
                    "current_stage": "enrichment",
                }
            ]
        }
    )
    job_store = PipelineJobStore(client)
    return job_store, job_store.get("owner-1"), client


def test_job_store_persists_counters_stage_and_cursor():
    job_store, job, client = _job_store()
    progress = JobProgressStore(job_store, job)
    state = PipelineState(owner_id="owner-1")
    state.apply_stage_result(
        StageResult(stage=Stage.EXTRACTION, processed=3, succeeded=2, failed=1, cursor="c003")
    )

    progress.save(state)

    row = client.row("pipeline_jobs", "job-1")
    assert row["thesis_processed"] == 3
    assert row["thesis_succeeded"] == 2
    assert row["thesis_failed"] == 1
    assert row["enrich_processed"] == 0
    assert row["current_stage"] == "extraction"
    assert row["stage_cursor"] == "c003"
    assert job.current_stage is Stage.EXTRACTION

    loaded = progress.load()
    assert loaded.current_stage is Stage.EXTRACTION
    assert loaded.stage_cursor == "c003"
    assert loaded.counters[Stage.EXTRACTION].processed == 3


def test_job_store_reset_via_none():
    job_store, job, client = _job_store()
    client.row("pipeline_jobs", "job-1").update({"embed_processed": 4, "embed_succeeded": 4, "stage_cursor": "c010"})

    JobProgressStore(job_store, job).save(None)

    row = client.row("pipeline_jobs", "job-1")
    assert row["embed_processed"] == 0
    assert row["stage_cursor"] is None
    assert row["current_stage"] == "enrichment"


def test_job_store_ignores_unknown_stage():
    job_store, job, client = _job_store()
    client.row("pipeline_jobs", "job-1")["current_stage"] = "summarising"

    assert JobProgressStore(job_store, job).load() is None
    assert JobRecord.from_row(client.row("pipeline_jobs", "job-1")).current_stage is Stage.ENRICHMENT
