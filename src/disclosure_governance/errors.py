"""Error taxonomy for the governance engine.

Every failure surfaced by an engine operation is one of these classes.
Callers branch on the class (or ``kind``) and render ``to_dict()``; they
never need to inspect the shape of a message.
"""

from __future__ import annotations

import enum
from typing import Any

from disclosure_governance.models import MissingField


class ErrorKind(enum.StrEnum):
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    VALIDATION_FAILED = "validation_failed"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    PERMISSION_DENIED = "permission_denied"


class GovernanceError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def retryable(self) -> bool:
        return False

    def details(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, **self.details()}


class NotFoundError(GovernanceError):
    """A referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id

    def details(self) -> dict[str, Any]:
        return {"entity_type": self.entity_type, "entity_id": self.entity_id}


class InvalidInputError(GovernanceError):
    """Malformed or missing input. Not retryable without fixing the input."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def details(self) -> dict[str, Any]:
        return {"field": self.field}


class ValidationFailedError(GovernanceError):
    """A domain rule rejected the operation; carries the missing prerequisites."""

    kind = ErrorKind.VALIDATION_FAILED

    def __init__(self, message: str, missing_fields: list[MissingField]) -> None:
        super().__init__(message)
        self.missing_fields = list(missing_fields)

    def details(self) -> dict[str, Any]:
        return {"missing_fields": [f.model_dump() for f in self.missing_fields]}


class InvalidTransitionError(GovernanceError):
    """A state machine rule was violated."""

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current: str,
        attempted: str,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message or f"{entity_type} {entity_id} cannot move from '{current}' to '{attempted}'"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current = current
        self.attempted = attempted

    def details(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "current": self.current,
            "attempted": self.attempted,
        }


class ConflictError(GovernanceError):
    """A concurrent write was detected. Reload and retry."""

    kind = ErrorKind.CONFLICT

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None,
        actual_version: int | None,
    ) -> None:
        super().__init__(
            f"Stale write to {entity_type} {entity_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version

    @property
    def retryable(self) -> bool:
        return True

    def details(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "expected_version": self.expected_version,
            "actual_version": self.actual_version,
        }


class StorageUnavailableError(GovernanceError):
    """The storage backend failed. Surfaced as-is, never retried internally."""

    kind = ErrorKind.STORAGE_UNAVAILABLE


class PermissionDeniedError(GovernanceError):
    """The authorization collaborator refused the operation."""

    kind = ErrorKind.PERMISSION_DENIED

    def __init__(self, actor_id: str, action: str, resource: str) -> None:
        super().__init__(f"{actor_id} is not allowed to {action} on {resource}")
        self.actor_id = actor_id
        self.action = action
        self.resource = resource

    def details(self) -> dict[str, Any]:
        return {"actor_id": self.actor_id, "action": self.action, "resource": self.resource}
