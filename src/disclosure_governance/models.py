"""Core data models for Disclosure Governance.

Defines the schemas for:
- Actors (who is performing an operation)
- Data points and their completeness status
- Completion exceptions (approved deviations)
- Remediation plans and actions
- Reporting periods, report snapshots, generations and exports
- Generation comparisons
- Access requests
- Audit log entries (what happened)
"""

from __future__ import annotations

import enum
from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    """Default clock: the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


# --- Enums ---


class CompletenessStatus(enum.StrEnum):
    MISSING = "missing"
    INCOMPLETE = "incomplete"
    COMPLETE = "complete"
    NOT_APPLICABLE = "not applicable"


class ExceptionType(enum.StrEnum):
    MISSING_DATA = "missing-data"
    ESTIMATED_DATA = "estimated-data"
    SIMPLIFIED_SCOPE = "simplified-scope"
    OTHER = "other"


class Priority(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PlanStatus(enum.StrEnum):
    PLANNED = "planned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ActionStatus(enum.StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class GenerationStatus(enum.StrEnum):
    DRAFT = "draft"
    FINAL = "final"


class DifferenceType(enum.StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


class ResourceType(enum.StrEnum):
    SECTION = "section"
    REPORT = "report"


class AccessStatus(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


TERMINAL_PLAN_STATUSES = frozenset({PlanStatus.COMPLETED, PlanStatus.CANCELLED})
TERMINAL_ACTION_STATUSES = frozenset({ActionStatus.COMPLETED, ActionStatus.CANCELLED})


# --- Identity ---


class Actor(BaseModel):
    """The caller performing an operation."""

    id: str = Field(..., min_length=1)
    name: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.id


# --- Data Points ---


class DataPoint(BaseModel):
    """A single trackable disclosure field within a report section.

    ``period``/``deadline`` and ``methodology``/``source`` are pairs: either
    member being present satisfies the combined completeness requirement.
    """

    id: str = Field(..., min_length=1)
    section_id: str = Field(..., min_length=1)
    title: str = ""
    completeness_status: CompletenessStatus = CompletenessStatus.MISSING
    value: str | None = None
    period: str | None = None
    deadline: str | None = None
    methodology: str | None = None
    source: str | None = None
    owner_id: str | None = None
    owner_name: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None
    version: int = 0


class MissingField(BaseModel):
    """A prerequisite that blocks a data point from becoming complete."""

    field: str
    reason: str


class SectionCompletenessSummary(BaseModel):
    """Read-only completeness overview for one report section."""

    section_id: str
    total: int
    counts: dict[CompletenessStatus, int] = Field(default_factory=dict)
    completion_percentage: float = 0.0
    blocked: dict[str, list[MissingField]] = Field(default_factory=dict)


# --- Completion Exceptions ---


class CompletionException(BaseModel):
    """An approved deviation letting a data point count as satisfied.

    Whether the exception is active is derived from ``expires_at`` at
    evaluation time, it is never stored.
    """

    id: str
    section_id: str
    data_point_id: str | None = None
    title: str
    exception_type: ExceptionType
    justification: str
    requested_by: str
    requested_at: datetime
    expires_at: date | None = None
    version: int = 0

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at >= now.date()

    def covers(self, data_point: DataPoint) -> bool:
        if self.section_id != data_point.section_id:
            return False
        return self.data_point_id is None or self.data_point_id == data_point.id


# --- Remediation ---


class RemediationPlan(BaseModel):
    """A tracked effort to resolve a data gap.

    ``gap_id``, ``assumption_id`` and ``data_point_id`` are weak references
    to entities owned outside this engine; at most one is set.
    """

    id: str
    section_id: str
    title: str
    description: str = ""
    target_period: str = ""
    owner_id: str = ""
    owner_name: str = ""
    priority: Priority = Priority.MEDIUM
    status: PlanStatus = PlanStatus.PLANNED
    gap_id: str | None = None
    assumption_id: str | None = None
    data_point_id: str | None = None
    completed_at: datetime | None = None
    completed_by: str | None = None
    created_by: str
    created_at: datetime
    updated_by: str | None = None
    updated_at: datetime | None = None
    version: int = 0


class RemediationAction(BaseModel):
    """A single step within a remediation plan."""

    id: str
    plan_id: str
    title: str
    description: str = ""
    owner_id: str = ""
    owner_name: str = ""
    due_date: date | None = None
    status: ActionStatus = ActionStatus.PENDING
    completed_at: datetime | None = None
    completed_by: str | None = None
    completion_notes: str | None = None
    evidence_ids: list[str] = Field(default_factory=list)
    created_by: str
    created_at: datetime
    updated_by: str | None = None
    updated_at: datetime | None = None
    version: int = 0


# --- Generations ---


class ReportingPeriod(BaseModel):
    """A reporting period that owns a sequence of generations."""

    id: str = Field(..., min_length=1)
    name: str
    start_date: date | None = None
    end_date: date | None = None
    created_at: datetime
    created_by: str
    version: int = 0


def _reject_duplicates(ids: list[str], label: str) -> None:
    seen: set[str] = set()
    for item_id in ids:
        if item_id in seen:
            raise ValueError(f"Duplicate {label} id in snapshot: {item_id}")
        seen.add(item_id)


class DataPointSnapshot(BaseModel):
    """A data point as rendered into a generation."""

    id: str
    title: str = ""
    value: str | None = None
    unit: str | None = None
    source: str | None = None
    completeness_status: CompletenessStatus | None = None


class SectionSnapshot(BaseModel):
    """A report section as rendered into a generation."""

    id: str
    title: str = ""
    catalog_code: str | None = None
    data_points: list[DataPointSnapshot] = Field(default_factory=list)

    @field_validator("data_points")
    @classmethod
    def validate_unique_data_points(cls, v):
        """Data point ids identify rows when generations are compared."""
        _reject_duplicates([dp.id for dp in v], "data point")
        return v


class ReportSnapshot(BaseModel):
    """The rendered section/data-point set of a report generation."""

    sections: list[SectionSnapshot] = Field(default_factory=list)

    @field_validator("sections")
    @classmethod
    def validate_unique_sections(cls, v):
        _reject_duplicates([s.id for s in v], "section")
        return v

    @property
    def section_count(self) -> int:
        return len(self.sections)

    @property
    def data_point_count(self) -> int:
        return sum(len(s.data_points) for s in self.sections)


class Generation(BaseModel):
    """One immutable-once-final version of a period's report output."""

    id: str
    period_id: str
    status: GenerationStatus = GenerationStatus.DRAFT
    checksum: str
    section_count: int
    data_point_count: int
    generated_by: str
    generated_by_name: str = ""
    generated_at: datetime
    variant_name: str | None = None
    note: str | None = None
    marked_final_at: datetime | None = None
    marked_final_by: str | None = None
    marked_final_by_name: str | None = None
    final_note: str | None = None
    version: int = 0


class ExportRecord(BaseModel):
    """Metadata about a document rendered from a generation."""

    id: str
    generation_id: str
    period_id: str
    format: str
    file_name: str
    file_size: int = Field(0, ge=0)
    file_checksum: str = ""
    exported_at: datetime
    exported_by: str
    options: dict[str, Any] = Field(default_factory=dict)
    version: int = 0


class DataPointDifference(BaseModel):
    """How a single data point differs between two generations."""

    data_point_id: str
    title: str = ""
    difference_type: DifferenceType
    old_value: str | None = None
    new_value: str | None = None


class SectionDifference(BaseModel):
    """How a single section differs between two generations."""

    section_id: str
    section_title: str = ""
    catalog_code: str | None = None
    difference_type: DifferenceType
    data_point_count1: int = 0
    data_point_count2: int = 0
    changes: list[str] = Field(default_factory=list)
    data_point_differences: list[DataPointDifference] = Field(default_factory=list)


class ComparisonSummary(BaseModel):
    sections_added: int = 0
    sections_removed: int = 0
    sections_modified: int = 0
    sections_unchanged: int = 0
    data_points_added: int = 0
    data_points_removed: int = 0
    data_points_modified: int = 0
    total_data_points1: int = 0
    total_data_points2: int = 0


class GenerationComparison(BaseModel):
    """Structural diff from generation1 to generation2."""

    generation1: Generation
    generation2: Generation
    summary: ComparisonSummary
    section_differences: list[SectionDifference] = Field(default_factory=list)
    changed_data_sources: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# --- Access Requests ---


class AccessRequest(BaseModel):
    """A third-party request to view a restricted section or report."""

    id: str
    requested_by: str
    resource_type: ResourceType
    resource_id: str
    resource_name: str = ""
    reason: str
    status: AccessStatus = AccessStatus.PENDING
    requested_at: datetime
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_comment: str | None = None
    version: int = 0


# --- Audit Log Schema ---


class FieldChange(BaseModel):
    """A single field-level before/after pair."""

    field: str
    old_value: Any = None
    new_value: Any = None


class AuditLogEntry(BaseModel):
    """A single entry in the append-only audit log."""

    id: str
    timestamp: datetime
    actor_id: str
    actor_name: str = ""
    action: str
    entity_type: str
    entity_id: str
    change_note: str | None = None
    changes: list[FieldChange] = Field(default_factory=list)
    prev_hash: str
    entry_hash: str = ""
