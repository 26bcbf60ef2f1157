import asyncio
import json

from src.functions.contact_pipeline.core.contracts import ContactRecord, Stage
from src.functions.contact_pipeline.core.contracts.config import PipelineConfig
from src.functions.contact_pipeline.core.processing.unit_processor import BatchUnitProcessor

from tests.contact_pipeline.fakes import FakeAIClient


class FakeContactStore:
    def __init__(self):
        self.updates = []
        self.theses = []

    def update_contact(self, contact_id, fields):
        self.updates.append((contact_id, dict(fields)))

    def upsert_thesis(self, row):
        self.theses.append(dict(row))


def _processor(ai=None, store=None, **config):
    store = store or FakeContactStore()
    ai = ai or FakeAIClient()
    processor = BatchUnitProcessor(
        store,
        ai,
        PipelineConfig(**config),
        embedding_dimensions=8,
    )
    return processor, store, ai


def _run(processor, stage, contact):
    return asyncio.run(processor.process(stage, contact))


def test_research_enrichment_fills_bio_and_short_title():
    processor, store, _ = _processor()
    contact = ContactRecord(id="c1", name="Ada Lovelace", company="Analytical", title="VC")

    outcome = _run(processor, Stage.ENRICHMENT, contact)

    assert outcome.success
    assert store.updates == [
        (
            "c1",
            {
                "bio": "Seasoned operator turned investor focused on developer tools and data infrastructure.",
                "title": "General Partner",
            },
        )
    ]


def test_research_enrichment_fills_missing_company_but_keeps_long_title():
    processor, store, _ = _processor()
    contact = ContactRecord(id="c1", name="Ada Lovelace", title="Chief Executive Officer")

    _run(processor, Stage.ENRICHMENT, contact)

    _, fields = store.updates[0]
    assert fields["company"] == "Example Ventures"
    assert "title" not in fields


def test_research_not_found_is_a_unit_failure():
    ai = FakeAIClient(bio_reply=json.dumps({"bio": None, "found": False}))
    processor, store, _ = _processor(ai=ai)

    outcome = _run(processor, Stage.ENRICHMENT, ContactRecord(id="c1", name="Nobody Known"))

    assert not outcome.success
    assert "no information" in outcome.error
    assert store.updates == []
    assert processor.failure_tracker.failed_ids("enrichment") == ["c1"]


def test_unparsable_research_is_a_unit_failure():
    ai = FakeAIClient(bio_reply="Sorry, I can't help with that.")
    processor, store, _ = _processor(ai=ai)

    outcome = _run(processor, Stage.ENRICHMENT, ContactRecord(id="c1", name="Ada Lovelace"))

    assert not outcome.success
    assert "unparsable" in outcome.error
    assert store.updates == []


def test_ai_exception_is_captured_not_raised():
    processor, store, _ = _processor(ai=FakeAIClient(fail_for={"Ada Lovelace"}))

    outcome = _run(processor, Stage.ENRICHMENT, ContactRecord(id="c1", name="Ada Lovelace"))

    assert not outcome.success
    assert outcome.error == "AI call failed for Ada Lovelace"
    assert processor.failure_tracker.get_attempts("enrichment", "c1") == 1


def test_investor_research_replaces_short_existing_notes():
    processor, store, _ = _processor()
    contact = ContactRecord(
        id="c1",
        name="Grace Hopper",
        title="General Partner",
        investor_notes="Angel",
        contact_type=["Angel"],
    )

    outcome = _run(processor, Stage.ENRICHMENT, contact)

    assert outcome.success
    notes = store.updates[0][1]["investor_notes"]
    assert not notes.startswith("Angel")
    assert "Invests in early-stage infrastructure software." in notes
    assert "Stages: Seed, Series A" in notes


def test_investor_notes_are_written_when_bio_research_finds_nothing():
    ai = FakeAIClient(bio_reply=json.dumps({"bio": None, "found": False}))
    processor, store, _ = _processor(ai=ai)
    contact = ContactRecord(id="c1", name="Grace Hopper", contact_type=["VC"])

    outcome = _run(processor, Stage.ENRICHMENT, contact)

    assert not outcome.success
    assert "no information" in outcome.error
    assert len(ai.calls_of("web_research")) == 2
    assert len(store.updates) == 1
    contact_id, fields = store.updates[0]
    assert contact_id == "c1"
    assert "bio" not in fields
    assert fields["investor_notes"].startswith("Invests in early-stage infrastructure software.")
    assert processor.failure_tracker.failed_ids("enrichment") == ["c1"]


def test_investor_research_skipped_when_notes_are_already_detailed():
    processor, store, ai = _processor()
    contact = ContactRecord(
        id="c1",
        name="Grace Hopper",
        is_investor=True,
        investor_notes="Leads seed rounds in compilers, developer tooling and language runtimes.",
    )

    _run(processor, Stage.ENRICHMENT, contact)

    assert len(ai.calls_of("web_research")) == 1
    assert "investor_notes" not in store.updates[0][1]


def test_investor_research_failure_keeps_bio():
    ai = FakeAIClient(fail_for={"investment thesis focus"})
    processor, store, _ = _processor(ai=ai)
    contact = ContactRecord(id="c1", name="Grace Hopper", is_investor=True)

    outcome = _run(processor, Stage.ENRICHMENT, contact)

    assert outcome.success
    assert "bio" in store.updates[0][1]
    assert "investor_notes" not in store.updates[0][1]
    assert processor.failure_tracker.failed_ids("investor_research") == ["c1"]


def test_investor_research_can_be_disabled():
    processor, store, ai = _processor(research_investor_notes=False)

    _run(processor, Stage.ENRICHMENT, ContactRecord(id="c1", name="Grace Hopper", is_investor=True))

    assert len(ai.calls_of("web_research")) == 1


def test_generate_mode_writes_completion_as_bio():
    processor, store, ai = _processor(bio_mode="generate", research_investor_notes=False)

    outcome = _run(processor, Stage.ENRICHMENT, ContactRecord(id="c1", name="Ada Lovelace"))

    assert outcome.success
    assert store.updates == [("c1", {"bio": "Generated biography text for the contact."})]
    assert ai.calls_of("web_research") == []


def test_thesis_extraction_upserts_mapped_row():
    processor, store, ai = _processor()
    contact = ContactRecord(id="c1", name="Ada", bio="Invests in developer tools.", title="Partner")

    outcome = _run(processor, Stage.EXTRACTION, contact)

    assert outcome.success
    assert store.theses == [
        {
            "contact_id": "c1",
            "sectors": ["Developer Tools"],
            "stages": ["Seed"],
            "check_sizes": ["$500K-$2M"],
            "geos": ["US"],
            "personas": ["technical founders"],
            "notes": "Backs technical founders building developer tools.",
        }
    ]
    assert "Invests in developer tools.\nPartner" in ai.calls_of("complete")[0]


def test_thesis_schema_mismatch_writes_nothing():
    ai = FakeAIClient(thesis_reply=json.dumps({"sectors": "FinTech"}))
    processor, store, _ = _processor(ai=ai)

    outcome = _run(processor, Stage.EXTRACTION, ContactRecord(id="c1", bio="Some bio text."))

    assert not outcome.success
    assert outcome.error.startswith("thesis unparsable: schema mismatch")
    assert store.theses == []


def test_embedding_stores_vector():
    processor, store, ai = _processor()
    contact = ContactRecord(id="c1", bio="Operator and investor in data tooling.", title="Partner")

    outcome = _run(processor, Stage.EMBEDDING, contact)

    assert outcome.success
    assert store.updates == [("c1", {"bio_embedding": [0.1] * 8})]
    assert ai.calls_of("embed") == ["Operator and investor in data tooling. Partner"]


def test_embedding_rejects_short_profile_without_calling_ai():
    processor, store, ai = _processor()

    outcome = _run(processor, Stage.EMBEDDING, ContactRecord(id="c1", bio="Short."))

    assert not outcome.success
    assert "too short" in outcome.error
    assert ai.calls_of("embed") == []
    assert store.updates == []


def test_embedding_dimension_mismatch_is_a_failure():
    processor, store, _ = _processor(ai=FakeAIClient(dimensions=4))

    outcome = _run(processor, Stage.EMBEDDING, ContactRecord(id="c1", bio="A long enough biography text."))

    assert not outcome.success
    assert "expected 8" in outcome.error
    assert store.updates == []


def test_embedding_input_is_truncated():
    store = FakeContactStore()
    ai = FakeAIClient()
    processor = BatchUnitProcessor(store, ai, PipelineConfig(), max_embedding_chars=100, embedding_dimensions=8)

    asyncio.run(processor.process(Stage.EMBEDDING, ContactRecord(id="c1", bio="x" * 500)))

    assert len(ai.calls_of("embed")[0]) == 100
