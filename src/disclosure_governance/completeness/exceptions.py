"""Completion exception register.

A completion exception is an approved deviation that lets a data point
(or every data point of a section, when no data point is named) count as
satisfied without meeting the completeness prerequisites. Exceptions are
created active and stay active until their optional expiry date passes;
activity is evaluated when read, there is no background sweep.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import date, datetime

from disclosure_governance.audit.recorder import AuditRecorder
from disclosure_governance.completeness.validator import covering_exceptions
from disclosure_governance.errors import InvalidInputError, NotFoundError
from disclosure_governance.models import (
    Actor,
    CompletionException,
    DataPoint,
    ExceptionType,
    FieldChange,
    utc_now,
)
from disclosure_governance.storage.base import EXCEPTIONS, Store, load, load_all, save

ENTITY_TYPE = "CompletionException"

DEFAULT_MIN_JUSTIFICATION_LENGTH = 10


def _parse_expiry(expires_at: date | datetime | str | None) -> date | None:
    if expires_at is None or expires_at == "":
        return None
    if isinstance(expires_at, datetime):
        return expires_at.date()
    if isinstance(expires_at, date):
        return expires_at
    try:
        return datetime.fromisoformat(expires_at).date()
    except ValueError as exc:
        raise InvalidInputError(
            f"Expiry date is not a valid ISO 8601 date: {expires_at!r}", field="expires_at",
        ) from exc


class ExceptionRegister:
    """Creates and looks up completion exceptions."""

    def __init__(
        self,
        store: Store,
        recorder: AuditRecorder,
        clock: Callable[[], datetime] | None = None,
        min_justification_length: int = DEFAULT_MIN_JUSTIFICATION_LENGTH,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._clock = clock or utc_now
        self._min_justification = min_justification_length

    def create(
        self,
        section_id: str,
        title: str,
        exception_type: ExceptionType | str,
        justification: str,
        requested_by: Actor,
        data_point_id: str | None = None,
        expires_at: date | datetime | str | None = None,
    ) -> CompletionException:
        """Record a new exception. Raises InvalidInputError naming the first failing rule."""
        now = self._clock()

        if not section_id or not section_id.strip():
            raise InvalidInputError("Section is required", field="section_id")
        if data_point_id is not None and not data_point_id.strip():
            raise InvalidInputError("Data point id must not be blank", field="data_point_id")
        if not title or not title.strip():
            raise InvalidInputError("Title is required", field="title")
        try:
            exception_type = ExceptionType(exception_type)
        except ValueError as exc:
            allowed = ", ".join(t.value for t in ExceptionType)
            raise InvalidInputError(
                f"Exception type must be one of: {allowed}", field="exception_type",
            ) from exc
        if len((justification or "").strip()) < self._min_justification:
            raise InvalidInputError(
                f"Justification must be at least {self._min_justification} characters",
                field="justification",
            )
        expiry = _parse_expiry(expires_at)
        if expiry is not None and expiry < now.date():
            raise InvalidInputError("Expiry date must be today or in the future", field="expires_at")

        exception = CompletionException(
            id=f"exc-{uuid.uuid4().hex[:12]}",
            section_id=section_id.strip(),
            data_point_id=data_point_id.strip() if data_point_id else None,
            title=title.strip(),
            exception_type=exception_type,
            justification=justification.strip(),
            requested_by=requested_by.id,
            requested_at=now,
            expires_at=expiry,
        )

        with self._store.transaction() as txn:
            exception = save(txn, EXCEPTIONS, exception)
            self._recorder.record(
                txn, requested_by, "created", ENTITY_TYPE, exception.id,
                changes=[
                    FieldChange(field="exception_type", new_value=exception.exception_type.value),
                    FieldChange(field="data_point_id", new_value=exception.data_point_id),
                    FieldChange(
                        field="expires_at",
                        new_value=expiry.isoformat() if expiry else None,
                    ),
                ],
                note=exception.title,
            )
        return exception

    def get(self, exception_id: str) -> CompletionException:
        exception = load(self._store, CompletionException, EXCEPTIONS, exception_id)
        if exception is None:
            raise NotFoundError(ENTITY_TYPE, exception_id)
        return exception

    def list(
        self,
        section_id: str | None = None,
        data_point_id: str | None = None,
        include_expired: bool = True,
    ) -> list[CompletionException]:
        """Exceptions newest first, optionally filtered."""
        now = self._clock()
        exceptions = list(load_all(self._store, CompletionException, EXCEPTIONS))
        if section_id:
            exceptions = [e for e in exceptions if e.section_id == section_id]
        if data_point_id:
            exceptions = [e for e in exceptions if e.data_point_id == data_point_id]
        if not include_expired:
            exceptions = [e for e in exceptions if e.is_active(now)]
        return sorted(exceptions, key=lambda e: e.requested_at, reverse=True)

    def active_for(self, data_point: DataPoint) -> list[CompletionException]:
        """Active exceptions covering ``data_point`` right now."""
        return covering_exceptions(data_point, self.list(section_id=data_point.section_id), self._clock())
