"""Tests for the generation version store."""

import pytest

from disclosure_governance.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from disclosure_governance.generations.store import (
    GenerationStore,
    canonical_bytes,
    compute_checksum,
)
from disclosure_governance.models import (
    DataPointSnapshot,
    GenerationStatus,
    ReportSnapshot,
    SectionSnapshot,
)
from disclosure_governance.storage.base import SNAPSHOTS


def _snapshot(value: str = "1200") -> ReportSnapshot:
    return ReportSnapshot(sections=[
        SectionSnapshot(
            id="sec-e1", title="Climate change", catalog_code="E1",
            data_points=[
                DataPointSnapshot(id="dp-1", title="Scope 1", value=value, unit="tCO2e", source="Invoices"),
                DataPointSnapshot(id="dp-2", title="Scope 2", value="800", unit="tCO2e"),
            ],
        ),
        SectionSnapshot(id="sec-s1", title="Own workforce", catalog_code="S1"),
    ])


@pytest.fixture()
def generations(store, recorder, clock, alice) -> GenerationStore:
    gs = GenerationStore(store, recorder, clock=clock)
    gs.register_period("fy2025", "FY2025", alice)
    return gs


class TestChecksum:
    def test_identical_content_same_checksum(self):
        assert compute_checksum(_snapshot()) == compute_checksum(_snapshot())

    def test_value_change_changes_checksum(self):
        assert compute_checksum(_snapshot("1200")) != compute_checksum(_snapshot("1201"))

    def test_section_order_matters(self):
        snap = _snapshot()
        reordered = ReportSnapshot(sections=list(reversed(snap.sections)))
        assert compute_checksum(snap) != compute_checksum(reordered)

    def test_canonical_form_is_compact_and_sorted(self):
        raw = canonical_bytes(ReportSnapshot(sections=[SectionSnapshot(id="a")]))
        assert b" " not in raw
        assert raw.index(b'"catalog_code"') < raw.index(b'"data_points"') < raw.index(b'"id"')


class TestPeriods:
    def test_register_and_get(self, generations):
        assert generations.get_period("fy2025").name == "FY2025"

    def test_duplicate_period(self, generations, alice):
        with pytest.raises(InvalidInputError):
            generations.register_period("fy2025", "Again", alice)

    def test_unknown_period(self, generations):
        with pytest.raises(NotFoundError):
            generations.get_period("fy1999")


class TestCreateGeneration:
    def test_create_draft(self, generations, alice):
        gen = generations.create_generation("fy2025", _snapshot(), alice, variant_name="board")

        assert gen.id.startswith("gen-")
        assert gen.status == GenerationStatus.DRAFT
        assert gen.checksum == compute_checksum(_snapshot())
        assert gen.section_count == 2
        assert gen.data_point_count == 2
        assert gen.generated_by == "u-alice"
        assert gen.generated_by_name == "Alice Analyst"
        assert generations.get_snapshot(gen.id) == _snapshot()

    def test_unknown_period(self, generations, recorder, alice):
        with pytest.raises(NotFoundError) as exc_info:
            generations.create_generation("fy1999", _snapshot(), alice)
        assert exc_info.value.entity_type == "ReportingPeriod"
        assert recorder.query(action="generated") == []

    def test_create_is_audited(self, generations, recorder, alice):
        gen = generations.create_generation("fy2025", _snapshot(), alice)
        entry = recorder.query(entity_id=gen.id)[0]
        assert entry.action == "generated"
        assert {c.field: c.new_value for c in entry.changes}["checksum"] == gen.checksum

    def test_history_newest_first(self, generations, alice):
        first = generations.create_generation("fy2025", _snapshot("1"), alice)
        second = generations.create_generation("fy2025", _snapshot("2"), alice)
        assert [g.id for g in generations.list_history("fy2025")] == [second.id, first.id]

    def test_history_of_empty_period(self, generations):
        assert generations.list_history("fy2025") == []


class TestMarkFinal:
    def test_mark_final(self, generations, recorder, bob, alice):
        gen = generations.create_generation("fy2025", _snapshot(), alice)
        final = generations.mark_final(gen.id, bob, note="Board approved")

        assert final.status == GenerationStatus.FINAL
        assert final.marked_final_by == "u-bob"
        assert final.marked_final_by_name == "Bob Reviewer"
        assert final.final_note == "Board approved"
        assert final.checksum == gen.checksum
        assert recorder.query(entity_id=gen.id, action="marked-final")

    def test_already_final(self, generations, alice):
        gen = generations.create_generation("fy2025", _snapshot(), alice)
        generations.mark_final(gen.id, alice)
        with pytest.raises(InvalidTransitionError) as exc_info:
            generations.mark_final(gen.id, alice)
        assert exc_info.value.message == f"Generation {gen.id} is already marked as final"

    def test_unknown_generation(self, generations, alice):
        with pytest.raises(NotFoundError):
            generations.mark_final("gen-nope", alice)

    def test_canonical_is_latest_final(self, generations, alice):
        first = generations.create_generation("fy2025", _snapshot("1"), alice)
        second = generations.create_generation("fy2025", _snapshot("2"), alice)
        generations.create_generation("fy2025", _snapshot("3"), alice)
        assert generations.canonical("fy2025") is None

        generations.mark_final(second.id, alice)
        generations.mark_final(first.id, alice)
        assert generations.canonical("fy2025").id == first.id


class TestVerify:
    def test_intact(self, generations, alice):
        gen = generations.create_generation("fy2025", _snapshot(), alice)
        assert generations.verify_generation(gen.id) is True

    def test_tampered_snapshot(self, store, generations, alice):
        gen = generations.create_generation("fy2025", _snapshot(), alice)
        record = store.get(SNAPSHOTS, gen.id)
        tampered = {**record.data, "snapshot": _snapshot("9999").model_dump(mode="json")}
        with store.transaction() as txn:
            txn.put(SNAPSHOTS, gen.id, tampered, expected_version=record.version)
        assert generations.verify_generation(gen.id) is False


class TestExports:
    def test_record_and_list(self, generations, recorder, alice):
        gen = generations.create_generation("fy2025", _snapshot(), alice)
        pdf = generations.record_export(gen.id, "PDF", "report.pdf", alice, file_size=2048)
        docx = generations.record_export(gen.id, "docx", "report.docx", alice)

        assert pdf.format == "pdf"
        assert pdf.period_id == "fy2025"
        assert [e.id for e in generations.list_exports("fy2025")] == [docx.id, pdf.id]
        assert generations.list_exports("fy2025", generation_id="gen-other") == []
        assert len(recorder.query(entity_id=gen.id, action="exported")) == 2

    def test_export_unknown_generation(self, generations, alice):
        with pytest.raises(NotFoundError):
            generations.record_export("gen-nope", "pdf", "x.pdf", alice)

    def test_export_requires_file_name(self, generations, alice):
        gen = generations.create_generation("fy2025", _snapshot(), alice)
        with pytest.raises(InvalidInputError):
            generations.record_export(gen.id, "pdf", "", alice)
