"""Tests for core data models and the error taxonomy."""

from datetime import UTC, date, datetime

import pytest
from pydantic import ValidationError

from disclosure_governance.errors import (
    ConflictError,
    ErrorKind,
    InvalidTransitionError,
    NotFoundError,
    StorageUnavailableError,
    ValidationFailedError,
)
from disclosure_governance.models import (
    Actor,
    CompletenessStatus,
    CompletionException,
    DataPoint,
    DataPointSnapshot,
    ExceptionType,
    MissingField,
    ReportSnapshot,
    SectionSnapshot,
)


class TestEnums:
    def test_completeness_values(self):
        assert [s.value for s in CompletenessStatus] == [
            "missing", "incomplete", "complete", "not applicable",
        ]

    def test_status_coerced_from_string(self):
        dp = DataPoint(id="dp-1", section_id="sec-e1", completeness_status="not applicable")
        assert dp.completeness_status is CompletenessStatus.NOT_APPLICABLE


class TestActor:
    def test_id_required(self):
        with pytest.raises(ValidationError):
            Actor(id="")

    def test_display_name_falls_back_to_id(self):
        assert Actor(id="u-1").display_name == "u-1"
        assert Actor(id="u-1", name="Una").display_name == "Una"


class TestCompletionException:
    def _exc(self, **overrides) -> CompletionException:
        defaults = {
            "id": "exc-1",
            "section_id": "sec-e1",
            "title": "Pending",
            "exception_type": ExceptionType.OTHER,
            "justification": "Justified at length.",
            "requested_by": "u-1",
            "requested_at": datetime(2026, 1, 1, tzinfo=UTC),
        }
        defaults.update(overrides)
        return CompletionException(**defaults)

    def test_without_expiry_always_active(self):
        assert self._exc().is_active(datetime(2099, 1, 1, tzinfo=UTC))

    def test_expiry_compared_by_date(self):
        exc = self._exc(expires_at=date(2026, 3, 15))
        assert exc.is_active(datetime(2026, 3, 15, 23, 59, tzinfo=UTC))
        assert not exc.is_active(datetime(2026, 3, 16, 0, 0, tzinfo=UTC))

    def test_covers(self):
        section_wide = self._exc()
        targeted = self._exc(data_point_id="dp-1")
        dp1 = DataPoint(id="dp-1", section_id="sec-e1")
        dp2 = DataPoint(id="dp-2", section_id="sec-e1")
        other = DataPoint(id="dp-1", section_id="sec-s1")

        assert section_wide.covers(dp1) and section_wide.covers(dp2)
        assert targeted.covers(dp1) and not targeted.covers(dp2)
        assert not section_wide.covers(other)


class TestReportSnapshot:
    def test_counts(self):
        snap = ReportSnapshot(sections=[
            SectionSnapshot(id="a", data_points=[DataPointSnapshot(id="1"), DataPointSnapshot(id="2")]),
            SectionSnapshot(id="b"),
        ])
        assert snap.section_count == 2
        assert snap.data_point_count == 2

    def test_duplicate_data_point_ids_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate data point id in snapshot: 1"):
            SectionSnapshot(id="a", data_points=[DataPointSnapshot(id="1"), DataPointSnapshot(id="1", value="x")])

    def test_duplicate_section_ids_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate section id in snapshot: a"):
            ReportSnapshot(sections=[SectionSnapshot(id="a"), SectionSnapshot(id="a")])

    def test_same_data_point_id_in_different_sections(self):
        snap = ReportSnapshot(sections=[
            SectionSnapshot(id="a", data_points=[DataPointSnapshot(id="1")]),
            SectionSnapshot(id="b", data_points=[DataPointSnapshot(id="1")]),
        ])
        assert snap.data_point_count == 2


class TestErrors:
    def test_not_found_payload(self):
        err = NotFoundError("DataPoint", "dp-1")
        assert err.kind == ErrorKind.NOT_FOUND
        assert err.to_dict() == {
            "kind": "not_found",
            "message": "DataPoint not found: dp-1",
            "entity_type": "DataPoint",
            "entity_id": "dp-1",
        }

    def test_validation_failed_carries_fields(self):
        err = ValidationFailedError("blocked", [MissingField(field="owner", reason="needed")])
        assert err.to_dict()["missing_fields"] == [{"field": "owner", "reason": "needed"}]

    def test_invalid_transition_default_message(self):
        err = InvalidTransitionError("RemediationPlan", "rp-1", "completed", "completed")
        assert "rp-1" in str(err)
        assert err.details()["current"] == "completed"

    def test_only_conflicts_are_retryable(self):
        assert ConflictError("DataPoint", "dp-1", 1, 2).retryable
        assert not NotFoundError("DataPoint", "dp-1").retryable
        assert not StorageUnavailableError("disk full").retryable
