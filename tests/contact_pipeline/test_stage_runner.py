import asyncio

from src.functions.contact_pipeline.core.contracts import Stage, UnitOutcome
from src.functions.contact_pipeline.core.contracts.config import PipelineConfig, StageSettings
from src.functions.contact_pipeline.core.db import ContactStore
from src.functions.contact_pipeline.core.processing import BatchUnitProcessor, StageRunner

from tests.contact_pipeline.fakes import FakeAIClient, FakeSupabaseClient, make_contact


class RecordingProcessor:
    def __init__(self, fail_ids=(), raise_ids=()):
        self.fail_ids = set(fail_ids)
        self.raise_ids = set(raise_ids)
        self.active = 0
        self.max_active = 0
        self.seen = []

    async def process(self, stage, contact):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.seen.append(contact.id)
        await asyncio.sleep(0)
        self.active -= 1
        if contact.id in self.raise_ids:
            raise RuntimeError("processor bug")
        if contact.id in self.fail_ids:
            return UnitOutcome(contact_id=contact.id, stage=stage, success=False, error="boom")
        return UnitOutcome(contact_id=contact.id, stage=stage, success=True)


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _config(group_size=2, delay=1.5, **kwargs):
    return PipelineConfig(
        stages={Stage.ENRICHMENT: StageSettings(group_size=group_size, group_delay_seconds=delay)},
        **kwargs,
    )


def _runner(count, processor=None, config=None, **kwargs):
    client = FakeSupabaseClient({"contacts": [make_contact(index) for index in range(1, count + 1)]})
    store = ContactStore(client)
    sleeper = SleepRecorder()
    runner = StageRunner(
        store,
        processor or RecordingProcessor(),
        config or _config(),
        sleep=sleeper,
        **kwargs,
    )
    return runner, sleeper, client


def test_page_is_processed_in_paced_concurrent_groups():
    processor = RecordingProcessor()
    runner, sleeper, _ = _runner(5, processor)

    result = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", page_size=5))

    assert processor.seen == ["c001", "c002", "c003", "c004", "c005"]
    assert processor.max_active == 2
    assert sleeper.delays == [1.5, 1.5]
    assert result.processed == 5
    assert result.cursor == "c005"
    assert not result.completed


def test_short_page_marks_stage_exhausted():
    runner, _, _ = _runner(7)

    first = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", page_size=3))
    second = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", cursor=first.cursor, page_size=3))
    third = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", cursor=second.cursor, page_size=3))

    assert [r.processed for r in (first, second, third)] == [3, 3, 1]
    assert [r.completed for r in (first, second, third)] == [False, False, True]


def test_exact_multiple_of_page_size_completes_on_empty_page():
    runner, sleeper, _ = _runner(6)

    first = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", page_size=3))
    second = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", cursor=first.cursor, page_size=3))
    third = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", cursor=second.cursor, page_size=3))

    assert not second.completed
    assert third.completed
    assert third.processed == 0
    assert third.cursor == second.cursor


def test_counters_are_conserved_across_failures():
    processor = RecordingProcessor(fail_ids={"c002"}, raise_ids={"c004"})
    runner, _, _ = _runner(5, processor)

    result = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", page_size=10))

    assert result.processed == 5
    assert result.succeeded == 3
    assert result.failed == 2
    assert result.processed == result.succeeded + result.failed
    assert result.failed_ids == ["c002", "c004"]
    assert result.completed


def test_deadline_stops_before_next_group():
    ticks = iter([0.0, 100.0])
    runner, _, _ = _runner(5, clock=lambda: next(ticks))

    result = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", page_size=5, deadline=10.0))

    assert result.deadline_reached
    assert not result.completed
    assert result.processed == 2
    assert result.cursor == "c002"


def test_window_mode_counts_ineligible_ids_as_skipped():
    processor = RecordingProcessor()
    runner, _, client = _runner(3, processor)
    client.row("contacts", "c002")["bio"] = "Already there"

    result = asyncio.run(
        runner.run(Stage.ENRICHMENT, "owner-1", contact_ids=["c001", "c002", "c003"], page_size=3)
    )

    assert processor.seen == ["c001", "c003"]
    assert result.skipped == 1
    assert result.processed == 2
    assert not result.completed


def test_short_window_marks_run_exhausted():
    runner, _, _ = _runner(3)

    result = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", contact_ids=["c003"], page_size=3))

    assert result.processed == 1
    assert result.completed


def test_failed_contacts_stay_eligible_for_the_next_pass():
    client = FakeSupabaseClient({"contacts": [make_contact(1, name="Broken Person"), make_contact(2, name="Broken Person")]})
    store = ContactStore(client)
    processor = BatchUnitProcessor(store, FakeAIClient(fail_for={"Broken Person"}), _config(delay=0))
    runner = StageRunner(store, processor, _config(delay=0))

    result = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", page_size=5))

    assert result.failed == 2
    assert result.completed
    assert [r.id for r in store.fetch_eligible(Stage.ENRICHMENT, "owner-1", 5)] == ["c001", "c002"]
    assert all(row["bio"] is None for row in client.rows("contacts"))


def test_successful_contacts_leave_the_stage():
    client = FakeSupabaseClient({"contacts": [make_contact(index) for index in range(1, 4)]})
    store = ContactStore(client)
    config = _config(delay=0, research_investor_notes=False)
    runner = StageRunner(store, BatchUnitProcessor(store, FakeAIClient(), config), config)

    result = asyncio.run(runner.run(Stage.ENRICHMENT, "owner-1", page_size=5))

    assert result.succeeded == 3
    assert store.fetch_eligible(Stage.ENRICHMENT, "owner-1", 5) == []
    assert [r.id for r in store.fetch_eligible(Stage.EXTRACTION, "owner-1", 5)] == ["c001", "c002", "c003"]
