"""Access request gate.

Records third-party requests to view a restricted section or report and
their one-time resolution::

    pending ──► approved
       └──────► denied

Both outcomes are terminal. Granting the actual access is left to the
permission collaborator; this gate only owns the request lifecycle.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from disclosure_governance.audit.recorder import AuditRecorder
from disclosure_governance.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from disclosure_governance.models import (
    AccessRequest,
    AccessStatus,
    Actor,
    FieldChange,
    ResourceType,
    utc_now,
)
from disclosure_governance.storage.base import ACCESS_REQUESTS, Store, load, load_all, save

logger = logging.getLogger(__name__)

ENTITY_TYPE = "AccessRequest"


class AccessRequestGate:
    """Creates and resolves access requests."""

    def __init__(
        self,
        store: Store,
        recorder: AuditRecorder,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._clock = clock or utc_now

    def create(
        self,
        requested_by: Actor,
        resource_type: ResourceType | str,
        resource_id: str,
        reason: str,
        resource_name: str = "",
    ) -> AccessRequest:
        """Create a new pending access request."""
        try:
            resource_type = ResourceType(resource_type)
        except ValueError as exc:
            raise InvalidInputError(
                f"Resource type must be 'section' or 'report', got {resource_type!r}",
                field="resource_type",
            ) from exc
        if not resource_id or not resource_id.strip():
            raise InvalidInputError("Resource id is required", field="resource_id")
        if not reason or not reason.strip():
            raise InvalidInputError("A reason for requesting access is required", field="reason")

        request = AccessRequest(
            id=f"acr-{uuid.uuid4().hex[:12]}",
            requested_by=requested_by.id,
            resource_type=resource_type,
            resource_id=resource_id.strip(),
            resource_name=resource_name,
            reason=reason.strip(),
            status=AccessStatus.PENDING,
            requested_at=self._clock(),
        )

        with self._store.transaction() as txn:
            request = save(txn, ACCESS_REQUESTS, request)
            self._recorder.record(
                txn, requested_by, "requested", ENTITY_TYPE, request.id,
                changes=[
                    FieldChange(field="status", new_value=AccessStatus.PENDING.value),
                    FieldChange(field="resource", new_value=f"{resource_type.value}/{request.resource_id}"),
                ],
                note=request.reason,
            )
        return request

    def get(self, request_id: str) -> AccessRequest:
        request = load(self._store, AccessRequest, ACCESS_REQUESTS, request_id)
        if request is None:
            raise NotFoundError(ENTITY_TYPE, request_id)
        return request

    def resolve(
        self,
        request_id: str,
        outcome: AccessStatus | str,
        resolver: Actor,
        comment: str | None = None,
    ) -> AccessRequest:
        """Resolve a pending request (approve or deny)."""
        try:
            outcome = AccessStatus(outcome)
        except ValueError:
            outcome = None
        if outcome not in (AccessStatus.APPROVED, AccessStatus.DENIED):
            raise InvalidInputError("Resolution must be 'approved' or 'denied'", field="outcome")

        with self._store.transaction() as txn:
            current = load(txn, AccessRequest, ACCESS_REQUESTS, request_id)
            if current is None:
                raise NotFoundError(ENTITY_TYPE, request_id)
            if current.status != AccessStatus.PENDING:
                raise InvalidTransitionError(
                    ENTITY_TYPE, request_id, current.status.value, outcome.value,
                    message=f"Access request {request_id} is already {current.status.value}",
                )

            updated = save(
                txn,
                ACCESS_REQUESTS,
                current.model_copy(update={
                    "status": outcome,
                    "resolved_by": resolver.id,
                    "resolved_at": self._clock(),
                    "resolution_comment": comment,
                }),
            )
            self._recorder.record(
                txn, resolver, outcome.value, ENTITY_TYPE, request_id,
                changes=[FieldChange(
                    field="status",
                    old_value=AccessStatus.PENDING.value,
                    new_value=outcome.value,
                )],
                note=comment,
            )

        logger.info("Access request %s %s by %s", request_id, outcome, resolver.id)
        return updated

    def list(
        self,
        status: AccessStatus | str | None = None,
        requested_by: str | None = None,
        resource_id: str | None = None,
    ) -> list[AccessRequest]:
        """Requests newest first, optionally filtered."""
        requests = list(load_all(self._store, AccessRequest, ACCESS_REQUESTS))
        if status:
            requests = [r for r in requests if r.status == status]
        if requested_by:
            requests = [r for r in requests if r.requested_by == requested_by]
        if resource_id:
            requests = [r for r in requests if r.resource_id == resource_id]
        return sorted(requests, key=lambda r: r.requested_at, reverse=True)
