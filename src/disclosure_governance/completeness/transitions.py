"""Data point completeness state machine.

Any status may move to any other status; only entry into ``complete`` is
gated by the completeness validator. Setting a data point to its current
status is a no-op that writes nothing. Every committed change is audited
in the same storage transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from disclosure_governance.audit.recorder import AuditRecorder, diff_fields
from disclosure_governance.completeness import validator
from disclosure_governance.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    ValidationFailedError,
)
from disclosure_governance.models import (
    Actor,
    CompletenessStatus,
    CompletionException,
    DataPoint,
    FieldChange,
    SectionCompletenessSummary,
    utc_now,
)
from disclosure_governance.storage.base import (
    DATA_POINTS,
    EXCEPTIONS,
    Store,
    Transaction,
    apply_changes,
    load,
    load_all,
    save,
)

logger = logging.getLogger(__name__)

ENTITY_TYPE = "DataPoint"

VALIDATION_MESSAGE = "Cannot mark data point as complete. Required fields are missing."

# Attributes that may be edited through update_fields().
EDITABLE_FIELDS = (
    "title",
    "value",
    "period",
    "deadline",
    "methodology",
    "source",
    "owner_id",
    "owner_name",
)


class StatusTransitionManager:
    """Owns data point state. The only component that mutates data points."""

    def __init__(
        self,
        store: Store,
        recorder: AuditRecorder,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._clock = clock or utc_now

    def register(self, data_point: DataPoint, actor: Actor) -> DataPoint:
        """Start tracking a data point.

        A data point registered as ``complete`` must already satisfy the
        completeness prerequisites.
        """
        now = self._clock()
        with self._store.transaction() as txn:
            if txn.get(DATA_POINTS, data_point.id) is not None:
                raise InvalidInputError(f"Data point already exists: {data_point.id}", field="id")
            self._check_complete(txn, data_point, data_point.completeness_status, now)

            created = save(
                txn,
                DATA_POINTS,
                data_point.model_copy(
                    update={"created_at": now, "updated_at": now, "updated_by": actor.id, "version": 0},
                ),
            )
            self._recorder.record(
                txn, actor, "created", ENTITY_TYPE, created.id,
                changes=[FieldChange(
                    field="completeness_status",
                    old_value=None,
                    new_value=created.completeness_status.value,
                )],
            )
        return created

    def get(self, data_point_id: str) -> DataPoint:
        data_point = load(self._store, DataPoint, DATA_POINTS, data_point_id)
        if data_point is None:
            raise NotFoundError(ENTITY_TYPE, data_point_id)
        return data_point

    def list_for_section(self, section_id: str) -> list[DataPoint]:
        points = [dp for dp in load_all(self._store, DataPoint, DATA_POINTS) if dp.section_id == section_id]
        return sorted(points, key=lambda dp: (dp.created_at or self._clock(), dp.id))

    def update_status(
        self,
        data_point_id: str,
        new_status: CompletenessStatus | str,
        actor: Actor,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> DataPoint:
        """Move a data point to ``new_status``.

        Raises NotFoundError, ValidationFailedError (with the missing
        fields) or ConflictError when ``expected_version`` is stale.
        """
        try:
            new_status = CompletenessStatus(new_status)
        except ValueError as exc:
            raise InvalidInputError(
                f"Unknown completeness status: {new_status!r}", field="completeness_status",
            ) from exc
        now = self._clock()

        with self._store.transaction() as txn:
            current = self._load_for_write(txn, data_point_id, expected_version)

            if current.completeness_status == new_status:
                logger.debug("Data point %s already %s, nothing to do", data_point_id, new_status)
                return current

            self._check_complete(txn, current, new_status, now)

            updated = save(
                txn,
                DATA_POINTS,
                current.model_copy(
                    update={"completeness_status": new_status, "updated_at": now, "updated_by": actor.id},
                ),
            )
            self._recorder.record(
                txn, actor, "status-changed", ENTITY_TYPE, data_point_id,
                changes=[FieldChange(
                    field="completeness_status",
                    old_value=current.completeness_status.value,
                    new_value=new_status.value,
                )],
                note=note,
            )

        logger.info(
            "Data point %s: %s -> %s by %s",
            data_point_id, current.completeness_status, new_status, actor.id,
        )
        return updated

    def update_fields(
        self,
        data_point_id: str,
        changes: dict[str, Any],
        actor: Actor,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> DataPoint:
        """Edit descriptive attributes of a data point.

        A ``complete`` data point may not lose a required attribute unless
        an active exception covers it.
        """
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise InvalidInputError(f"Fields cannot be edited: {', '.join(unknown)}", field=unknown[0])

        now = self._clock()
        with self._store.transaction() as txn:
            current = self._load_for_write(txn, data_point_id, expected_version)
            candidate = apply_changes(current, changes)
            field_changes = diff_fields(
                current.model_dump(mode="json"), candidate.model_dump(mode="json"), EDITABLE_FIELDS,
            )
            if not field_changes:
                return current

            self._check_complete(txn, candidate, current.completeness_status, now)
            updated = save(
                txn,
                DATA_POINTS,
                candidate.model_copy(update={"updated_at": now, "updated_by": actor.id}),
            )
            self._recorder.record(
                txn, actor, "updated", ENTITY_TYPE, data_point_id, changes=field_changes, note=note,
            )
        return updated

    def summarize_section(self, section_id: str) -> SectionCompletenessSummary:
        """Completeness counts for a section and what blocks the rest."""
        now = self._clock()
        points = self.list_for_section(section_id)
        exceptions = list(load_all(self._store, CompletionException, EXCEPTIONS))

        counts = {status: 0 for status in CompletenessStatus}
        blocked = {}
        for dp in points:
            counts[dp.completeness_status] += 1
            if dp.completeness_status in (CompletenessStatus.COMPLETE, CompletenessStatus.NOT_APPLICABLE):
                continue
            missing = validator.validate(dp, CompletenessStatus.COMPLETE, exceptions, now)
            if missing:
                blocked[dp.id] = missing

        # Not-applicable points count as done
        applicable = len(points) - counts[CompletenessStatus.NOT_APPLICABLE]
        percentage = 100.0 if applicable == 0 else round(
            100.0 * counts[CompletenessStatus.COMPLETE] / applicable, 1,
        )
        return SectionCompletenessSummary(
            section_id=section_id,
            total=len(points),
            counts=counts,
            completion_percentage=percentage,
            blocked=blocked,
        )

    def _load_for_write(
        self, txn: Transaction, data_point_id: str, expected_version: int | None,
    ) -> DataPoint:
        current = load(txn, DataPoint, DATA_POINTS, data_point_id)
        if current is None:
            raise NotFoundError(ENTITY_TYPE, data_point_id)
        if expected_version is not None and expected_version != current.version:
            raise ConflictError(ENTITY_TYPE, data_point_id, expected_version, current.version)
        return current

    def _check_complete(
        self,
        txn: Transaction,
        data_point: DataPoint,
        status: CompletenessStatus,
        now: datetime,
    ) -> None:
        if status != CompletenessStatus.COMPLETE:
            return
        exceptions = load_all(txn, CompletionException, EXCEPTIONS)
        missing = validator.validate(data_point, status, exceptions, now)
        if missing:
            raise ValidationFailedError(VALIDATION_MESSAGE, missing)
