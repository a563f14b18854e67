"""GovernanceEngine: the single public entry point.

Wires together every internal component (store, audit recorder, status
transitions, exception register, remediation tracker, generation store,
comparator, access gate) behind one class, and checks the authorization
collaborator before every operation.

Usage::

    from disclosure_governance import Actor, GovernanceEngine

    engine = GovernanceEngine(store="./governance.db")
    alice = Actor(id="u-alice", name="Alice")

    engine.update_status("dp-energy-1", "complete", alice)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from disclosure_governance.access.gate import AccessRequestGate
from disclosure_governance.audit.recorder import AuditRecorder
from disclosure_governance.authz.authorizer import (
    AllowAllAuthorizer,
    Authorizer,
    PatternAuthorizer,
)
from disclosure_governance.completeness.exceptions import (
    DEFAULT_MIN_JUSTIFICATION_LENGTH,
    ExceptionRegister,
)
from disclosure_governance.completeness.transitions import StatusTransitionManager
from disclosure_governance.config import GovernanceConfig
from disclosure_governance.errors import InvalidInputError, PermissionDeniedError
from disclosure_governance.generations.comparator import VersionComparator
from disclosure_governance.generations.store import GenerationStore
from disclosure_governance.models import (
    AccessRequest,
    AccessStatus,
    Actor,
    AuditLogEntry,
    CompletenessStatus,
    CompletionException,
    DataPoint,
    ExceptionType,
    ExportRecord,
    Generation,
    GenerationComparison,
    Priority,
    RemediationAction,
    RemediationPlan,
    ReportingPeriod,
    ReportSnapshot,
    ResourceType,
    SectionCompletenessSummary,
    utc_now,
)
from disclosure_governance.remediation.tracker import RemediationTracker
from disclosure_governance.storage.base import Store
from disclosure_governance.storage.memory import InMemoryStore
from disclosure_governance.storage.sqlite import SQLiteStore


class GovernanceEngine:
    """Public API for the governance engine."""

    def __init__(
        self,
        store: Store | str | Path | None = None,
        authorizer: Authorizer | dict[str, list[str]] | None = None,
        clock: Callable[[], datetime] | None = None,
        min_justification_length: int = DEFAULT_MIN_JUSTIFICATION_LENGTH,
    ) -> None:
        """Initialize the engine.

        Args:
            store: A Store instance, a path to a SQLite database, or None
                for an in-memory store.
            authorizer: An Authorizer, or a dict of actor id to action
                patterns to build a PatternAuthorizer. None allows all.
            clock: Returns the current aware UTC datetime (default: now).
            min_justification_length: Minimum completion exception
                justification length.
        """
        if store is None or store == ":memory:":
            store = InMemoryStore()
        elif isinstance(store, (str, Path)):
            store = SQLiteStore(store)
        self._store: Store = store

        if authorizer is None:
            authorizer = AllowAllAuthorizer()
        elif isinstance(authorizer, dict):
            authorizer = PatternAuthorizer(authorizer)
        self._authorizer: Authorizer = authorizer

        self._clock = clock or utc_now
        self._audit = AuditRecorder(self._store, clock=self._clock)
        self._status = StatusTransitionManager(self._store, self._audit, clock=self._clock)
        self._exceptions = ExceptionRegister(
            self._store, self._audit, clock=self._clock,
            min_justification_length=min_justification_length,
        )
        self._remediation = RemediationTracker(self._store, self._audit, clock=self._clock)
        self._generations = GenerationStore(self._store, self._audit, clock=self._clock)
        self._comparator = VersionComparator(self._generations)
        self._access = AccessRequestGate(self._store, self._audit, clock=self._clock)

    @classmethod
    def from_config(
        cls,
        config: GovernanceConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> GovernanceEngine:
        return cls(
            store=config.store,
            authorizer=config.permissions,
            clock=clock,
            min_justification_length=config.min_justification_length,
        )

    # --- Component access ---

    @property
    def store(self) -> Store:
        return self._store

    @property
    def audit(self) -> AuditRecorder:
        return self._audit

    @property
    def generations(self) -> GenerationStore:
        return self._generations

    def _authorize(self, actor: Actor, action: str, resource: str) -> None:
        if not self._authorizer.can_perform(actor, action, resource):
            raise PermissionDeniedError(actor.id, action, resource)

    # --- Data points ---

    def register_data_point(self, data_point: DataPoint, actor: Actor) -> DataPoint:
        self._authorize(actor, "data_point.register", f"section/{data_point.section_id}")
        return self._status.register(data_point, actor)

    def get_data_point(self, actor: Actor, data_point_id: str) -> DataPoint:
        self._authorize(actor, "data_point.get", f"data_point/{data_point_id}")
        return self._status.get(data_point_id)

    def update_status(
        self,
        data_point_id: str,
        new_status: CompletenessStatus | str,
        actor: Actor,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> DataPoint:
        self._authorize(actor, "data_point.update_status", f"data_point/{data_point_id}")
        return self._status.update_status(
            data_point_id, new_status, actor,
            note=note, expected_version=expected_version,
        )

    def update_data_point(
        self,
        data_point_id: str,
        changes: dict[str, Any],
        actor: Actor,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> DataPoint:
        self._authorize(actor, "data_point.update", f"data_point/{data_point_id}")
        return self._status.update_fields(
            data_point_id, changes, actor, note=note, expected_version=expected_version,
        )

    def summarize_section(self, actor: Actor, section_id: str) -> SectionCompletenessSummary:
        self._authorize(actor, "section.summarize", f"section/{section_id}")
        return self._status.summarize_section(section_id)

    # --- Completion exceptions ---

    def create_exception(
        self,
        section_id: str,
        title: str,
        exception_type: ExceptionType | str,
        justification: str,
        requested_by: Actor,
        data_point_id: str | None = None,
        expires_at: date | datetime | str | None = None,
    ) -> CompletionException:
        self._authorize(requested_by, "exception.create", f"section/{section_id}")
        return self._exceptions.create(
            section_id, title, exception_type, justification, requested_by,
            data_point_id=data_point_id, expires_at=expires_at,
        )

    def list_exceptions(
        self,
        actor: Actor,
        section_id: str | None = None,
        data_point_id: str | None = None,
        include_expired: bool = True,
    ) -> list[CompletionException]:
        self._authorize(actor, "exception.list", f"section/{section_id or '*'}")
        return self._exceptions.list(
            section_id=section_id, data_point_id=data_point_id, include_expired=include_expired,
        )

    # --- Remediation ---

    def create_plan(
        self,
        section_id: str,
        title: str,
        actor: Actor,
        description: str = "",
        target_period: str = "",
        owner_id: str = "",
        owner_name: str = "",
        priority: Priority | str = Priority.MEDIUM,
        gap_id: str | None = None,
        assumption_id: str | None = None,
        data_point_id: str | None = None,
    ) -> RemediationPlan:
        self._authorize(actor, "remediation_plan.create", f"section/{section_id}")
        return self._remediation.create_plan(
            section_id, title, actor,
            description=description, target_period=target_period,
            owner_id=owner_id, owner_name=owner_name, priority=priority,
            gap_id=gap_id, assumption_id=assumption_id, data_point_id=data_point_id,
        )

    def update_plan(
        self,
        plan_id: str,
        changes: dict[str, Any],
        actor: Actor,
        expected_version: int | None = None,
    ) -> RemediationPlan:
        self._authorize(actor, "remediation_plan.update", f"remediation_plan/{plan_id}")
        return self._remediation.update_plan(plan_id, changes, actor, expected_version=expected_version)

    def complete_plan(self, plan_id: str, actor: Actor, note: str | None = None) -> RemediationPlan:
        self._authorize(actor, "remediation_plan.complete", f"remediation_plan/{plan_id}")
        return self._remediation.complete_plan(plan_id, actor, note=note)

    def delete_plan(self, plan_id: str, actor: Actor) -> None:
        self._authorize(actor, "remediation_plan.delete", f"remediation_plan/{plan_id}")
        self._remediation.delete_plan(plan_id, actor)

    def get_plan(self, actor: Actor, plan_id: str) -> RemediationPlan:
        self._authorize(actor, "remediation_plan.get", f"remediation_plan/{plan_id}")
        return self._remediation.get_plan(plan_id)

    def list_plans(
        self,
        actor: Actor,
        section_id: str,
        gap_id: str | None = None,
        assumption_id: str | None = None,
        data_point_id: str | None = None,
    ) -> list[RemediationPlan]:
        self._authorize(actor, "remediation_plan.list", f"section/{section_id}")
        return self._remediation.list_plans(
            section_id, gap_id=gap_id, assumption_id=assumption_id, data_point_id=data_point_id,
        )

    def create_action(
        self,
        plan_id: str,
        title: str,
        actor: Actor,
        description: str = "",
        owner_id: str = "",
        owner_name: str = "",
        due_date: date | None = None,
    ) -> RemediationAction:
        self._authorize(actor, "remediation_action.create", f"remediation_plan/{plan_id}")
        return self._remediation.create_action(
            plan_id, title, actor,
            description=description, owner_id=owner_id, owner_name=owner_name, due_date=due_date,
        )

    def update_action(
        self,
        action_id: str,
        changes: dict[str, Any],
        actor: Actor,
        expected_version: int | None = None,
    ) -> RemediationAction:
        self._authorize(actor, "remediation_action.update", f"remediation_action/{action_id}")
        return self._remediation.update_action(action_id, changes, actor, expected_version=expected_version)

    def complete_action(
        self,
        action_id: str,
        actor: Actor,
        notes: str | None = None,
        evidence_ids: Iterable[str] = (),
    ) -> RemediationAction:
        self._authorize(actor, "remediation_action.complete", f"remediation_action/{action_id}")
        return self._remediation.complete_action(action_id, actor, notes=notes, evidence_ids=evidence_ids)

    def delete_action(self, action_id: str, actor: Actor) -> None:
        self._authorize(actor, "remediation_action.delete", f"remediation_action/{action_id}")
        self._remediation.delete_action(action_id, actor)

    def list_actions(self, actor: Actor, plan_id: str) -> list[RemediationAction]:
        self._authorize(actor, "remediation_action.list", f"remediation_plan/{plan_id}")
        return self._remediation.list_actions(plan_id)

    # --- Generations ---

    def register_period(
        self,
        period_id: str,
        name: str,
        actor: Actor,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> ReportingPeriod:
        self._authorize(actor, "period.register", f"period/{period_id}")
        return self._generations.register_period(
            period_id, name, actor, start_date=start_date, end_date=end_date,
        )

    def create_generation(
        self,
        period_id: str,
        snapshot: ReportSnapshot | dict[str, Any],
        actor: Actor,
        variant_name: str | None = None,
        note: str | None = None,
    ) -> Generation:
        self._authorize(actor, "generation.create", f"period/{period_id}")
        if isinstance(snapshot, dict):
            try:
                snapshot = ReportSnapshot.model_validate(snapshot)
            except ValidationError as exc:
                error = exc.errors()[0]
                location = ".".join(str(part) for part in error["loc"])
                raise InvalidInputError(
                    f"Invalid snapshot: {location}: {error['msg']}", field="snapshot",
                ) from exc
        return self._generations.create_generation(
            period_id, snapshot, actor, variant_name=variant_name, note=note,
        )

    def mark_final(self, generation_id: str, actor: Actor, note: str | None = None) -> Generation:
        self._authorize(actor, "generation.mark_final", f"generation/{generation_id}")
        return self._generations.mark_final(generation_id, actor, note=note)

    def get_generation(self, actor: Actor, generation_id: str) -> Generation:
        self._authorize(actor, "generation.get", f"generation/{generation_id}")
        return self._generations.get(generation_id)

    def list_history(self, actor: Actor, period_id: str) -> list[Generation]:
        self._authorize(actor, "generation.list", f"period/{period_id}")
        return self._generations.list_history(period_id)

    def compare_generations(
        self, actor: Actor, generation_id1: str, generation_id2: str,
    ) -> GenerationComparison:
        self._authorize(actor, "generation.compare", f"generation/{generation_id1}")
        return self._comparator.compare(generation_id1, generation_id2)

    def verify_generation(self, actor: Actor, generation_id: str) -> bool:
        self._authorize(actor, "generation.verify", f"generation/{generation_id}")
        return self._generations.verify_generation(generation_id)

    def record_export(
        self,
        generation_id: str,
        file_format: str,
        file_name: str,
        actor: Actor,
        file_size: int = 0,
        file_checksum: str = "",
        options: dict[str, Any] | None = None,
    ) -> ExportRecord:
        self._authorize(actor, "generation.export", f"generation/{generation_id}")
        return self._generations.record_export(
            generation_id, file_format, file_name, actor,
            file_size=file_size, file_checksum=file_checksum, options=options,
        )

    def list_exports(
        self, actor: Actor, period_id: str, generation_id: str | None = None,
    ) -> list[ExportRecord]:
        self._authorize(actor, "generation.list_exports", f"period/{period_id}")
        return self._generations.list_exports(period_id, generation_id=generation_id)

    # --- Access requests ---

    def create_access_request(
        self,
        requested_by: Actor,
        resource_type: ResourceType | str,
        resource_id: str,
        reason: str,
        resource_name: str = "",
    ) -> AccessRequest:
        self._authorize(requested_by, "access_request.create", f"{resource_type}/{resource_id}")
        return self._access.create(
            requested_by, resource_type, resource_id, reason, resource_name=resource_name,
        )

    def resolve_access_request(
        self,
        request_id: str,
        outcome: AccessStatus | str,
        resolver: Actor,
        comment: str | None = None,
    ) -> AccessRequest:
        self._authorize(resolver, "access_request.resolve", f"access_request/{request_id}")
        return self._access.resolve(request_id, outcome, resolver, comment=comment)

    def list_access_requests(
        self,
        actor: Actor,
        status: AccessStatus | str | None = None,
        requested_by: str | None = None,
        resource_id: str | None = None,
    ) -> list[AccessRequest]:
        self._authorize(actor, "access_request.list", "access_request/*")
        return self._access.list(status=status, requested_by=requested_by, resource_id=resource_id)

    # --- Audit ---

    def audit_trail(
        self,
        actor: Actor,
        entity_type: str | None = None,
        entity_id: str | None = None,
        limit: int | None = None,
    ) -> list[AuditLogEntry]:
        self._authorize(actor, "audit.read", f"{entity_type or '*'}/{entity_id or '*'}")
        return self._audit.query(entity_type=entity_type, entity_id=entity_id, limit=limit)

    def audit_verify(self, actor: Actor) -> tuple[bool, list[str]]:
        """Check the audit hash chain; returns (is_valid, errors)."""
        self._authorize(actor, "audit.verify", "audit_log/*")
        return self._audit.verify()
