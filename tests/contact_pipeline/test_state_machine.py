import pytest

from src.functions.contact_pipeline.core.contracts import JobStatus, Stage, StageResult
from src.functions.contact_pipeline.core.orchestration import PipelinePhase, PipelineStateMachine


@pytest.fixture
def machine():
    return PipelineStateMachine(error_threshold=5)


def test_partial_page_stays_on_stage(machine):
    transition = machine.advance(StageResult(stage=Stage.EXTRACTION, processed=5, completed=False))

    assert transition.stage is Stage.EXTRACTION
    assert transition.status is JobStatus.RUNNING
    assert transition.phase is PipelinePhase.EXTRACTION


@pytest.mark.parametrize(
    "stage, expected",
    [(Stage.ENRICHMENT, Stage.EXTRACTION), (Stage.EXTRACTION, Stage.EMBEDDING)],
)
def test_completed_stage_moves_forward(machine, stage, expected):
    result = StageResult(stage=stage, completed=True)

    assert not machine.requires_work_check(result)
    assert machine.advance(result).stage is expected


def test_final_stage_with_more_work_starts_new_cycle(machine):
    result = StageResult(stage=Stage.EMBEDDING, completed=True)

    assert machine.requires_work_check(result)
    transition = machine.advance(result, has_more_work=True)

    assert transition.stage is Stage.ENRICHMENT
    assert transition.status is JobStatus.RUNNING
    assert transition.cycle_complete


def test_final_stage_without_work_goes_idle(machine):
    transition = machine.advance(StageResult(stage=Stage.EMBEDDING, completed=True), has_more_work=False)

    assert transition.stage is Stage.ENRICHMENT
    assert transition.status is JobStatus.IDLE
    assert transition.phase is PipelinePhase.IDLE


def test_final_stage_requires_work_check_result(machine):
    with pytest.raises(ValueError):
        machine.advance(StageResult(stage=Stage.EMBEDDING, completed=True))


def test_errors_below_threshold_keep_status(machine):
    assert machine.on_error(4) is JobStatus.RUNNING
    assert machine.on_error(1, JobStatus.IDLE) is JobStatus.IDLE


def test_threshold_marks_failed(machine):
    assert machine.on_error(5) is JobStatus.FAILED
    assert machine.on_error(7, JobStatus.IDLE) is JobStatus.FAILED


def test_stage_order():
    assert [stage.next for stage in Stage] == [Stage.EXTRACTION, Stage.EMBEDDING, None]
