"""Tests for the GovernanceEngine (public API)."""

from pathlib import Path

import pytest

from disclosure_governance import GovernanceEngine
from disclosure_governance.config import GovernanceConfig
from disclosure_governance.errors import (
    ErrorKind,
    GovernanceError,
    InvalidInputError,
    PermissionDeniedError,
    ValidationFailedError,
)
from disclosure_governance.models import (
    Actor,
    CompletenessStatus,
    DataPoint,
    GenerationStatus,
)
from disclosure_governance.storage.memory import InMemoryStore
from disclosure_governance.storage.sqlite import SQLiteStore

ANALYST = Actor(id="u-alice", name="Alice Analyst")
AUDITOR = Actor(id="auditor-1", name="External Auditor")

SNAPSHOT = {
    "sections": [
        {
            "id": "sec-e1",
            "title": "Climate change",
            "catalog_code": "E1",
            "data_points": [{"id": "dp-1", "title": "Scope 1", "value": "1200", "source": "Invoices"}],
        },
    ],
}


@pytest.fixture()
def engine(clock) -> GovernanceEngine:
    return GovernanceEngine(clock=clock)


# --- Initialization ---


class TestInit:
    def test_defaults_to_memory_store(self):
        assert isinstance(GovernanceEngine().store, InMemoryStore)

    def test_memory_marker(self):
        assert isinstance(GovernanceEngine(store=":memory:").store, InMemoryStore)

    def test_path_opens_sqlite(self, tmp_path: Path):
        engine = GovernanceEngine(store=tmp_path / "g.db")
        assert isinstance(engine.store, SQLiteStore)
        engine.store.close()

    def test_from_config(self, tmp_path: Path):
        cfg = GovernanceConfig(
            store=str(tmp_path / "g.db"),
            min_justification_length=3,
            permissions={"u-alice": ["*"]},
        )
        engine = GovernanceEngine.from_config(cfg)
        assert isinstance(engine.store, SQLiteStore)
        exc = engine.create_exception("sec-e1", "Scope", "other", "n/a", ANALYST)
        assert exc.justification == "n/a"
        with pytest.raises(PermissionDeniedError):
            engine.summarize_section(AUDITOR, "sec-e1")
        engine.store.close()


# --- Authorization ---


class TestAuthorization:
    def test_denied_operation_has_no_effect(self, clock):
        engine = GovernanceEngine(clock=clock, authorizer={"u-alice": ["*"], "auditor-1": ["*.get"]})
        engine.register_data_point(DataPoint(id="dp-1", section_id="sec-e1"), ANALYST)

        with pytest.raises(PermissionDeniedError) as exc_info:
            engine.update_status("dp-1", "incomplete", AUDITOR)

        err = exc_info.value
        assert err.kind == ErrorKind.PERMISSION_DENIED
        assert err.to_dict()["action"] == "data_point.update_status"
        assert engine.get_data_point(AUDITOR, "dp-1").completeness_status == CompletenessStatus.MISSING
        assert engine.audit.query(action="status-changed") == []

    def test_custom_authorizer(self, clock):
        class ReadOnly:
            def can_perform(self, actor, action, resource):
                return action.endswith((".get", ".list", ".compare"))

        engine = GovernanceEngine(clock=clock, authorizer=ReadOnly())
        with pytest.raises(PermissionDeniedError):
            engine.register_period("fy2025", "FY2025", ANALYST)


# --- End-to-end flows ---


class TestCompletenessFlow:
    def test_blocked_then_excepted(self, engine):
        engine.register_data_point(
            DataPoint(id="dp-1", section_id="sec-e1", value="1200", owner_id="u-alice"), ANALYST,
        )
        with pytest.raises(ValidationFailedError) as exc_info:
            engine.update_status("dp-1", "complete", ANALYST)
        assert exc_info.value.to_dict()["missing_fields"][0]["field"] == "period/deadline"

        engine.create_exception(
            "sec-e1", "Methodology under review", "simplified-scope",
            "Scope limited to owned facilities this year.", ANALYST,
        )
        dp = engine.update_status("dp-1", "complete", ANALYST, note="With exception")
        assert dp.completeness_status == CompletenessStatus.COMPLETE
        assert engine.summarize_section(ANALYST, "sec-e1").completion_percentage == 100.0

    def test_update_data_point_then_complete(self, engine):
        engine.register_data_point(DataPoint(id="dp-1", section_id="sec-e1"), ANALYST)
        engine.update_data_point(
            "dp-1",
            {"value": "42", "deadline": "2026-06-30", "methodology": "Survey", "owner_id": "u-alice"},
            ANALYST,
        )
        assert engine.update_status("dp-1", "complete", ANALYST).completeness_status == "complete"


class TestRemediationFlow:
    def test_plan_lifecycle(self, engine):
        plan = engine.create_plan("sec-e1", "Close supplier gap", ANALYST, gap_id="gap-3")
        action = engine.create_action(plan.id, "Send survey", ANALYST)
        engine.complete_action(action.id, ANALYST, evidence_ids=["ev-9"])
        engine.update_plan(plan.id, {"status": "in-progress"}, ANALYST)
        done = engine.complete_plan(plan.id, ANALYST)

        assert done.completed_at is not None
        assert engine.list_plans(ANALYST, "sec-e1", gap_id="gap-3")[0].id == plan.id
        assert engine.list_actions(ANALYST, plan.id)[0].evidence_ids == ["ev-9"]

        engine.delete_plan(plan.id, ANALYST)
        assert engine.list_plans(ANALYST, "sec-e1") == []
        assert engine.list_actions(ANALYST, plan.id) == []


class TestGenerationFlow:
    def test_generate_finalize_compare_export(self, engine):
        engine.register_period("fy2025", "FY2025", ANALYST)
        g1 = engine.create_generation("fy2025", SNAPSHOT, ANALYST)
        changed = {"sections": [{**SNAPSHOT["sections"][0], "data_points": [
            {"id": "dp-1", "title": "Scope 1", "value": "1150", "source": "Meter"},
        ]}]}
        g2 = engine.create_generation("fy2025", changed, ANALYST, variant_name="restated")

        final = engine.mark_final(g2.id, ANALYST, note="Approved")
        assert final.status == GenerationStatus.FINAL
        assert engine.generations.canonical("fy2025").id == g2.id
        assert [g.id for g in engine.list_history(ANALYST, "fy2025")] == [g2.id, g1.id]

        comparison = engine.compare_generations(ANALYST, g1.id, g2.id)
        assert comparison.summary.data_points_modified == 1
        assert comparison.changed_data_sources == ["Invoices", "Meter"]

        assert engine.verify_generation(ANALYST, g2.id)
        export = engine.record_export(g2.id, "pdf", "fy2025.pdf", ANALYST, file_size=10)
        assert engine.list_exports(ANALYST, "fy2025")[0].id == export.id

    def test_invalid_snapshot_is_typed_error(self, engine):
        engine.register_period("fy2025", "FY2025", ANALYST)
        with pytest.raises(InvalidInputError) as exc_info:
            engine.create_generation("fy2025", {"sections": [{"title": "no id"}]}, ANALYST)

        assert isinstance(exc_info.value, GovernanceError)
        assert exc_info.value.field == "snapshot"
        assert "sections.0.id" in exc_info.value.message
        assert engine.list_history(ANALYST, "fy2025") == []

    def test_duplicate_data_point_ids_rejected(self, engine):
        engine.register_period("fy2025", "FY2025", ANALYST)
        duplicated = {"sections": [{"id": "sec-e1", "data_points": [
            {"id": "dp-1", "value": "1"}, {"id": "dp-1", "value": "2"},
        ]}]}
        with pytest.raises(InvalidInputError) as exc_info:
            engine.create_generation("fy2025", duplicated, ANALYST)
        assert "Duplicate data point id" in exc_info.value.message


class TestAccessFlow:
    def test_request_and_resolve(self, engine):
        req = engine.create_access_request(AUDITOR, "report", "fy2025", "Limited assurance")
        engine.resolve_access_request(req.id, "approved", ANALYST, comment="OK")
        requests = engine.list_access_requests(ANALYST, status="approved")
        assert [r.id for r in requests] == [req.id]


class TestAuditTrail:
    def test_every_mutation_audited_and_chain_valid(self, engine):
        engine.register_data_point(DataPoint(id="dp-1", section_id="sec-e1"), ANALYST)
        engine.update_status("dp-1", "incomplete", ANALYST)
        engine.create_plan("sec-e1", "Fix", ANALYST)
        engine.register_period("fy2025", "FY2025", ANALYST)

        trail = engine.audit_trail(ANALYST)
        assert [e.action for e in trail] == ["created", "created", "status-changed", "created"]
        assert engine.audit_trail(ANALYST, entity_type="DataPoint", limit=1)[0].action == "status-changed"
        assert engine.audit.verify() == (True, [])

    def test_verify_requires_permission(self, clock):
        engine = GovernanceEngine(clock=clock, authorizer={"u-alice": ["*"], "auditor-1": ["audit.read"]})
        engine.register_period("fy2025", "FY2025", ANALYST)

        assert engine.audit_verify(ANALYST) == (True, [])
        with pytest.raises(PermissionDeniedError) as exc_info:
            engine.audit_verify(AUDITOR)
        assert exc_info.value.to_dict()["action"] == "audit.verify"
