"""Append-only report generation history.

Every generation of a period's report is kept, each identified by a
SHA-256 checksum of its rendered snapshot. Generations are created as
drafts and may be marked final exactly once; nothing moves a final
generation back to draft and nothing rewrites a checksum. The snapshot
itself is stored next to the generation so it can be compared and its
checksum re-verified later.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

from disclosure_governance.audit.recorder import AuditRecorder
from disclosure_governance.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from disclosure_governance.models import (
    Actor,
    ExportRecord,
    FieldChange,
    Generation,
    GenerationStatus,
    ReportingPeriod,
    ReportSnapshot,
    utc_now,
)
from disclosure_governance.storage.base import (
    EXPORTS,
    GENERATIONS,
    PERIODS,
    SNAPSHOTS,
    Store,
    load,
    load_all,
    save,
)

logger = logging.getLogger(__name__)

GENERATION_ENTITY = "Generation"
PERIOD_ENTITY = "ReportingPeriod"


def canonical_bytes(snapshot: ReportSnapshot) -> bytes:
    """Serialize a snapshot with sorted keys and no insignificant whitespace.

    List order is part of the content: reordering sections changes the
    rendered report and therefore the checksum.
    """
    return json.dumps(
        snapshot.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def compute_checksum(snapshot: ReportSnapshot) -> str:
    return hashlib.sha256(canonical_bytes(snapshot)).hexdigest()


class GenerationStore:
    """Owns reporting periods, generations, their snapshots and export records."""

    def __init__(
        self,
        store: Store,
        recorder: AuditRecorder,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._clock = clock or utc_now

    # --- Periods ---

    def register_period(
        self,
        period_id: str,
        name: str,
        actor: Actor,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> ReportingPeriod:
        if not period_id or not period_id.strip():
            raise InvalidInputError("Period id is required", field="period_id")
        if not name or not name.strip():
            raise InvalidInputError("Period name is required", field="name")
        if start_date and end_date and end_date < start_date:
            raise InvalidInputError("Period end date must not precede its start date", field="end_date")

        with self._store.transaction() as txn:
            if txn.get(PERIODS, period_id) is not None:
                raise InvalidInputError(f"Reporting period already exists: {period_id}", field="period_id")
            period = save(
                txn,
                PERIODS,
                ReportingPeriod(
                    id=period_id,
                    name=name.strip(),
                    start_date=start_date,
                    end_date=end_date,
                    created_at=self._clock(),
                    created_by=actor.id,
                ),
            )
            self._recorder.record(
                txn, actor, "created", PERIOD_ENTITY, period_id,
                changes=[FieldChange(field="name", new_value=period.name)],
            )
        return period

    def get_period(self, period_id: str) -> ReportingPeriod:
        period = load(self._store, ReportingPeriod, PERIODS, period_id)
        if period is None:
            raise NotFoundError(PERIOD_ENTITY, period_id)
        return period

    # --- Generations ---

    def create_generation(
        self,
        period_id: str,
        snapshot: ReportSnapshot,
        actor: Actor,
        variant_name: str | None = None,
        note: str | None = None,
    ) -> Generation:
        """Store a new draft generation of ``period_id``'s report."""
        checksum = compute_checksum(snapshot)
        now = self._clock()

        with self._store.transaction() as txn:
            if txn.get(PERIODS, period_id) is None:
                raise NotFoundError(PERIOD_ENTITY, period_id)

            generation = save(
                txn,
                GENERATIONS,
                Generation(
                    id=f"gen-{uuid.uuid4().hex[:12]}",
                    period_id=period_id,
                    status=GenerationStatus.DRAFT,
                    checksum=checksum,
                    section_count=snapshot.section_count,
                    data_point_count=snapshot.data_point_count,
                    generated_by=actor.id,
                    generated_by_name=actor.display_name,
                    generated_at=now,
                    variant_name=variant_name,
                    note=note,
                ),
            )
            txn.put(
                SNAPSHOTS,
                generation.id,
                {"generation_id": generation.id, "snapshot": snapshot.model_dump(mode="json")},
                expected_version=0,
            )
            self._recorder.record(
                txn, actor, "generated", GENERATION_ENTITY, generation.id,
                changes=[
                    FieldChange(field="status", new_value=GenerationStatus.DRAFT.value),
                    FieldChange(field="checksum", new_value=checksum),
                    FieldChange(field="section_count", new_value=generation.section_count),
                    FieldChange(field="data_point_count", new_value=generation.data_point_count),
                ],
                note=note,
            )

        logger.info(
            "Generation %s created for period %s (checksum %s)",
            generation.id, period_id, checksum[:12],
        )
        return generation

    def mark_final(self, generation_id: str, actor: Actor, note: str | None = None) -> Generation:
        """Mark a draft generation final. Terminal: a final generation stays final."""
        now = self._clock()
        with self._store.transaction() as txn:
            current = load(txn, Generation, GENERATIONS, generation_id)
            if current is None:
                raise NotFoundError(GENERATION_ENTITY, generation_id)
            if current.status == GenerationStatus.FINAL:
                raise InvalidTransitionError(
                    GENERATION_ENTITY, generation_id,
                    current.status.value, GenerationStatus.FINAL.value,
                    message=f"Generation {generation_id} is already marked as final",
                )

            updated = save(
                txn,
                GENERATIONS,
                current.model_copy(update={
                    "status": GenerationStatus.FINAL,
                    "marked_final_at": now,
                    "marked_final_by": actor.id,
                    "marked_final_by_name": actor.display_name,
                    "final_note": note,
                }),
            )
            self._recorder.record(
                txn, actor, "marked-final", GENERATION_ENTITY, generation_id,
                changes=[FieldChange(
                    field="status",
                    old_value=GenerationStatus.DRAFT.value,
                    new_value=GenerationStatus.FINAL.value,
                )],
                note=note,
            )

        logger.info("Generation %s marked final by %s", generation_id, actor.id)
        return updated

    def get(self, generation_id: str) -> Generation:
        generation = load(self._store, Generation, GENERATIONS, generation_id)
        if generation is None:
            raise NotFoundError(GENERATION_ENTITY, generation_id)
        return generation

    def get_snapshot(self, generation_id: str) -> ReportSnapshot:
        record = self._store.get(SNAPSHOTS, generation_id)
        if record is None:
            raise NotFoundError(GENERATION_ENTITY, generation_id)
        return ReportSnapshot.model_validate(record.data["snapshot"])

    def list_history(self, period_id: str) -> list[Generation]:
        """Every generation of the period, newest first."""
        generations = [
            g for g in load_all(self._store, Generation, GENERATIONS) if g.period_id == period_id
        ]
        return sorted(generations, key=lambda g: g.generated_at, reverse=True)

    def canonical(self, period_id: str) -> Generation | None:
        """The period's canonical artifact: the most recently finalized generation."""
        finals = [g for g in self.list_history(period_id) if g.status == GenerationStatus.FINAL]
        if not finals:
            return None
        return max(finals, key=lambda g: g.marked_final_at or g.generated_at)

    def verify_generation(self, generation_id: str) -> bool:
        """True if the stored snapshot still hashes to the recorded checksum."""
        generation = self.get(generation_id)
        intact = compute_checksum(self.get_snapshot(generation_id)) == generation.checksum
        if not intact:
            logger.warning("Generation %s snapshot does not match its checksum", generation_id)
        return intact

    # --- Exports ---

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
        """Record that a document was rendered from a generation."""
        if not file_format or not file_format.strip():
            raise InvalidInputError("Export format is required", field="format")
        if not file_name or not file_name.strip():
            raise InvalidInputError("File name is required", field="file_name")
        if file_size < 0:
            raise InvalidInputError("File size must not be negative", field="file_size")

        with self._store.transaction() as txn:
            generation = load(txn, Generation, GENERATIONS, generation_id)
            if generation is None:
                raise NotFoundError(GENERATION_ENTITY, generation_id)

            export = save(
                txn,
                EXPORTS,
                ExportRecord(
                    id=f"exp-{uuid.uuid4().hex[:12]}",
                    generation_id=generation_id,
                    period_id=generation.period_id,
                    format=file_format.strip().lower(),
                    file_name=file_name.strip(),
                    file_size=file_size,
                    file_checksum=file_checksum,
                    exported_at=self._clock(),
                    exported_by=actor.id,
                    options=options or {},
                ),
            )
            self._recorder.record(
                txn, actor, "exported", GENERATION_ENTITY, generation_id,
                changes=[
                    FieldChange(field="format", new_value=export.format),
                    FieldChange(field="file_name", new_value=export.file_name),
                    FieldChange(field="file_checksum", new_value=file_checksum),
                ],
            )
        return export

    def list_exports(self, period_id: str, generation_id: str | None = None) -> list[ExportRecord]:
        exports = [e for e in load_all(self._store, ExportRecord, EXPORTS) if e.period_id == period_id]
        if generation_id:
            exports = [e for e in exports if e.generation_id == generation_id]
        return sorted(exports, key=lambda e: e.exported_at, reverse=True)
