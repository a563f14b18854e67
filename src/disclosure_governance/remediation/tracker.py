"""Remediation plans and their actions.

Plan lifecycle::

    planned ──► in-progress ──► completed
       │             │
       └─────────────┴───────► cancelled

``completed`` and ``cancelled`` are terminal: a plan in either state (and
its actions) can no longer be edited, only deleted. ``completed_at`` is set
exactly when the plan is completed.

Deleting a plan removes its actions in the same transaction and writes a
single audit entry for the plan.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import Any

from disclosure_governance.audit.recorder import AuditRecorder, diff_fields
from disclosure_governance.errors import (
    ConflictError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from disclosure_governance.models import (
    TERMINAL_ACTION_STATUSES,
    TERMINAL_PLAN_STATUSES,
    ActionStatus,
    Actor,
    FieldChange,
    PlanStatus,
    Priority,
    RemediationAction,
    RemediationPlan,
    utc_now,
)
from disclosure_governance.storage.base import (
    ACTIONS,
    PLANS,
    Store,
    Transaction,
    apply_changes,
    load,
    load_all,
    remove,
    save,
)

logger = logging.getLogger(__name__)

PLAN_ENTITY = "RemediationPlan"
ACTION_ENTITY = "RemediationAction"

# Gap, assumption and data point ids are owned elsewhere; only their shape is checked.
REFERENCE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:-]*$")

PLAN_EDITABLE_FIELDS = (
    "title",
    "description",
    "target_period",
    "owner_id",
    "owner_name",
    "priority",
    "status",
)
ACTION_EDITABLE_FIELDS = (
    "title",
    "description",
    "owner_id",
    "owner_name",
    "due_date",
    "status",
)


def _require_text(value: str | None, field: str, label: str) -> str:
    if value is None or not value.strip():
        raise InvalidInputError(f"{label} is required", field=field)
    return value.strip()


def _check_reference(value: str | None, field: str) -> str | None:
    if value is None:
        return None
    if not REFERENCE_ID_PATTERN.match(value):
        raise InvalidInputError(f"Malformed reference id for {field}: {value!r}", field=field)
    return value


def _check_editable(changes: dict[str, Any], allowed: Iterable[str]) -> None:
    unknown = sorted(set(changes) - set(allowed))
    if unknown:
        raise InvalidInputError(f"Fields cannot be edited: {', '.join(unknown)}", field=unknown[0])


class RemediationTracker:
    """Owns remediation plans and the action sub-ledger keyed by plan id."""

    def __init__(
        self,
        store: Store,
        recorder: AuditRecorder,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._clock = clock or utc_now

    # --- Plans ---

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
        section_id = _require_text(section_id, "section_id", "Section")
        title = _require_text(title, "title", "Title")
        priority = self._parse_priority(priority)
        links = {
            "gap_id": _check_reference(gap_id, "gap_id"),
            "assumption_id": _check_reference(assumption_id, "assumption_id"),
            "data_point_id": _check_reference(data_point_id, "data_point_id"),
        }
        if sum(v is not None for v in links.values()) > 1:
            raise InvalidInputError(
                "A plan may link to at most one gap, assumption or data point", field="gap_id",
            )

        now = self._clock()
        plan = RemediationPlan(
            id=f"rp-{uuid.uuid4().hex[:12]}",
            section_id=section_id,
            title=title,
            description=description,
            target_period=target_period,
            owner_id=owner_id,
            owner_name=owner_name,
            priority=priority,
            status=PlanStatus.PLANNED,
            created_by=actor.id,
            created_at=now,
            **links,
        )

        with self._store.transaction() as txn:
            plan = save(txn, PLANS, plan)
            self._recorder.record(
                txn, actor, "created", PLAN_ENTITY, plan.id,
                changes=[
                    FieldChange(field="title", new_value=plan.title),
                    FieldChange(field="status", new_value=plan.status.value),
                ],
            )
        return plan

    def get_plan(self, plan_id: str) -> RemediationPlan:
        plan = load(self._store, RemediationPlan, PLANS, plan_id)
        if plan is None:
            raise NotFoundError(PLAN_ENTITY, plan_id)
        return plan

    def list_plans(
        self,
        section_id: str,
        gap_id: str | None = None,
        assumption_id: str | None = None,
        data_point_id: str | None = None,
    ) -> list[RemediationPlan]:
        """Plans for a section, most recently created first."""
        plans = [p for p in load_all(self._store, RemediationPlan, PLANS) if p.section_id == section_id]
        if gap_id:
            plans = [p for p in plans if p.gap_id == gap_id]
        if assumption_id:
            plans = [p for p in plans if p.assumption_id == assumption_id]
        if data_point_id:
            plans = [p for p in plans if p.data_point_id == data_point_id]
        return sorted(plans, key=lambda p: p.created_at, reverse=True)

    def update_plan(
        self,
        plan_id: str,
        changes: dict[str, Any],
        actor: Actor,
        expected_version: int | None = None,
    ) -> RemediationPlan:
        """Edit an open plan. Setting status to completed behaves like complete_plan()."""
        _check_editable(changes, PLAN_EDITABLE_FIELDS)
        changes = dict(changes)
        if "title" in changes:
            changes["title"] = _require_text(changes["title"], "title", "Title")
        if "priority" in changes:
            changes["priority"] = self._parse_priority(changes["priority"])
        if "status" in changes:
            try:
                changes["status"] = PlanStatus(changes["status"])
            except ValueError as exc:
                raise InvalidInputError(f"Unknown plan status: {changes['status']!r}", field="status") from exc

        now = self._clock()
        with self._store.transaction() as txn:
            current = self._plan_for_write(txn, plan_id, expected_version)
            attempted = changes.get("status", current.status)
            self._ensure_open(current, attempted)

            update = {**changes, "updated_by": actor.id, "updated_at": now}
            if attempted == PlanStatus.COMPLETED:
                update.update(completed_at=now, completed_by=actor.id)
            candidate = apply_changes(current, update)

            field_changes = diff_fields(
                current.model_dump(mode="json"),
                candidate.model_dump(mode="json"),
                (*PLAN_EDITABLE_FIELDS, "completed_at", "completed_by"),
            )
            if not field_changes:
                return current

            updated = save(txn, PLANS, candidate)
            self._recorder.record(txn, actor, "updated", PLAN_ENTITY, plan_id, changes=field_changes)
        return updated

    def complete_plan(self, plan_id: str, actor: Actor, note: str | None = None) -> RemediationPlan:
        now = self._clock()
        with self._store.transaction() as txn:
            current = self._plan_for_write(txn, plan_id, None)
            self._ensure_open(current, PlanStatus.COMPLETED)

            updated = save(
                txn,
                PLANS,
                current.model_copy(update={
                    "status": PlanStatus.COMPLETED,
                    "completed_at": now,
                    "completed_by": actor.id,
                    "updated_at": now,
                    "updated_by": actor.id,
                }),
            )
            self._recorder.record(
                txn, actor, "completed", PLAN_ENTITY, plan_id,
                changes=[
                    FieldChange(field="status", old_value=current.status.value, new_value=PlanStatus.COMPLETED.value),
                    FieldChange(field="completed_at", new_value=now.isoformat()),
                    FieldChange(field="completed_by", new_value=actor.id),
                ],
                note=note,
            )

        logger.info("Remediation plan %s completed by %s", plan_id, actor.id)
        return updated

    def delete_plan(self, plan_id: str, actor: Actor) -> None:
        """Delete a plan and every action under it, atomically."""
        with self._store.transaction() as txn:
            plan = self._plan_for_write(txn, plan_id, None)
            actions = self._actions_of(txn, plan_id)
            for action in actions:
                remove(txn, ACTIONS, action)
            remove(txn, PLANS, plan)
            self._recorder.record(
                txn, actor, "deleted", PLAN_ENTITY, plan_id,
                changes=[
                    FieldChange(field="status", old_value=plan.status.value, new_value=None),
                    FieldChange(field="action_count", old_value=len(actions), new_value=0),
                ],
                note=plan.title,
            )

        logger.info("Remediation plan %s deleted with %d action(s) by %s", plan_id, len(actions), actor.id)

    # --- Actions ---

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
        title = _require_text(title, "title", "Title")
        now = self._clock()

        with self._store.transaction() as txn:
            plan = self._plan_for_write(txn, plan_id, None)
            self._ensure_open(plan, plan.status)

            action = save(
                txn,
                ACTIONS,
                RemediationAction(
                    id=f"ra-{uuid.uuid4().hex[:12]}",
                    plan_id=plan_id,
                    title=title,
                    description=description,
                    owner_id=owner_id,
                    owner_name=owner_name,
                    due_date=due_date,
                    created_by=actor.id,
                    created_at=now,
                ),
            )
            self._recorder.record(
                txn, actor, "created", ACTION_ENTITY, action.id,
                changes=[
                    FieldChange(field="plan_id", new_value=plan_id),
                    FieldChange(field="title", new_value=title),
                ],
            )
        return action

    def get_action(self, action_id: str) -> RemediationAction:
        action = load(self._store, RemediationAction, ACTIONS, action_id)
        if action is None:
            raise NotFoundError(ACTION_ENTITY, action_id)
        return action

    def list_actions(self, plan_id: str) -> list[RemediationAction]:
        actions = [a for a in load_all(self._store, RemediationAction, ACTIONS) if a.plan_id == plan_id]
        return sorted(actions, key=lambda a: a.created_at)

    def update_action(
        self,
        action_id: str,
        changes: dict[str, Any],
        actor: Actor,
        expected_version: int | None = None,
    ) -> RemediationAction:
        _check_editable(changes, ACTION_EDITABLE_FIELDS)
        changes = dict(changes)
        if "title" in changes:
            changes["title"] = _require_text(changes["title"], "title", "Title")
        if "status" in changes:
            try:
                changes["status"] = ActionStatus(changes["status"])
            except ValueError as exc:
                raise InvalidInputError(f"Unknown action status: {changes['status']!r}", field="status") from exc
        if isinstance(changes.get("due_date"), str):
            try:
                changes["due_date"] = date.fromisoformat(changes["due_date"])
            except ValueError as exc:
                raise InvalidInputError("Due date is not a valid ISO 8601 date", field="due_date") from exc

        now = self._clock()
        with self._store.transaction() as txn:
            action = self._action_for_write(txn, action_id, expected_version)
            attempted = changes.get("status", action.status)
            self._ensure_action_open(txn, action, attempted)

            update = {**changes, "updated_by": actor.id, "updated_at": now}
            if attempted == ActionStatus.COMPLETED:
                update.update(completed_at=now, completed_by=actor.id)
            candidate = apply_changes(action, update)

            field_changes = diff_fields(
                action.model_dump(mode="json"),
                candidate.model_dump(mode="json"),
                (*ACTION_EDITABLE_FIELDS, "completed_at", "completed_by"),
            )
            if not field_changes:
                return action

            updated = save(txn, ACTIONS, candidate)
            self._recorder.record(txn, actor, "updated", ACTION_ENTITY, action_id, changes=field_changes)
        return updated

    def complete_action(
        self,
        action_id: str,
        actor: Actor,
        notes: str | None = None,
        evidence_ids: Iterable[str] = (),
    ) -> RemediationAction:
        now = self._clock()
        evidence = list(evidence_ids)
        with self._store.transaction() as txn:
            action = self._action_for_write(txn, action_id, None)
            self._ensure_action_open(txn, action, ActionStatus.COMPLETED)

            updated = save(
                txn,
                ACTIONS,
                action.model_copy(update={
                    "status": ActionStatus.COMPLETED,
                    "completed_at": now,
                    "completed_by": actor.id,
                    "completion_notes": notes,
                    "evidence_ids": [*action.evidence_ids, *evidence],
                    "updated_at": now,
                    "updated_by": actor.id,
                }),
            )
            self._recorder.record(
                txn, actor, "completed", ACTION_ENTITY, action_id,
                changes=[
                    FieldChange(field="status", old_value=action.status.value, new_value=ActionStatus.COMPLETED.value),
                    FieldChange(field="evidence_ids", old_value=action.evidence_ids, new_value=updated.evidence_ids),
                ],
                note=notes,
            )
        return updated

    def delete_action(self, action_id: str, actor: Actor) -> None:
        with self._store.transaction() as txn:
            action = self._action_for_write(txn, action_id, None)
            plan = load(txn, RemediationPlan, PLANS, action.plan_id)
            if plan is not None:
                self._ensure_open(plan, plan.status)
            remove(txn, ACTIONS, action)
            self._recorder.record(
                txn, actor, "deleted", ACTION_ENTITY, action_id,
                changes=[FieldChange(field="plan_id", old_value=action.plan_id, new_value=None)],
                note=action.title,
            )

    # --- Internals ---

    @staticmethod
    def _parse_priority(priority: Priority | str) -> Priority:
        try:
            return Priority(priority)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown priority: {priority!r}", field="priority") from exc

    @staticmethod
    def _ensure_open(plan: RemediationPlan, attempted: PlanStatus) -> None:
        if plan.status in TERMINAL_PLAN_STATUSES:
            raise InvalidTransitionError(
                PLAN_ENTITY, plan.id, plan.status.value, PlanStatus(attempted).value,
                message=f"Remediation plan {plan.id} is {plan.status.value} and can no longer be changed",
            )

    def _ensure_action_open(
        self, txn: Transaction, action: RemediationAction, attempted: ActionStatus,
    ) -> None:
        plan = load(txn, RemediationPlan, PLANS, action.plan_id)
        if plan is not None:
            self._ensure_open(plan, plan.status)
        if action.status in TERMINAL_ACTION_STATUSES:
            raise InvalidTransitionError(
                ACTION_ENTITY, action.id, action.status.value, ActionStatus(attempted).value,
                message=f"Remediation action {action.id} is {action.status.value} and can no longer be changed",
            )

    def _actions_of(self, txn: Transaction, plan_id: str) -> list[RemediationAction]:
        return [a for a in load_all(txn, RemediationAction, ACTIONS) if a.plan_id == plan_id]

    def _plan_for_write(
        self, txn: Transaction, plan_id: str, expected_version: int | None,
    ) -> RemediationPlan:
        plan = load(txn, RemediationPlan, PLANS, plan_id)
        if plan is None:
            raise NotFoundError(PLAN_ENTITY, plan_id)
        if expected_version is not None and expected_version != plan.version:
            raise ConflictError(PLAN_ENTITY, plan_id, expected_version, plan.version)
        return plan

    def _action_for_write(
        self, txn: Transaction, action_id: str, expected_version: int | None,
    ) -> RemediationAction:
        action = load(txn, RemediationAction, ACTIONS, action_id)
        if action is None:
            raise NotFoundError(ACTION_ENTITY, action_id)
        if expected_version is not None and expected_version != action.version:
            raise ConflictError(ACTION_ENTITY, action_id, expected_version, action.version)
        return action
