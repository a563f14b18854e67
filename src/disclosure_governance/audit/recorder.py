"""Hash-chained append-only audit trail.

Each entry records who did what to which entity, with field-level
before/after values, plus:
- prev_hash: SHA-256 of the previous entry (or "0"*64 for the first)
- entry_hash: SHA-256 of this entry's content (computed before writing)

Entries are written through the same storage transaction as the domain
change they describe, so both commit or neither does. Modifying or
deleting any stored entry breaks the chain and is detectable via verify().
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from disclosure_governance.models import Actor, AuditLogEntry, FieldChange, utc_now
from disclosure_governance.storage.base import AUDIT_LOG, Store, Transaction

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


def compute_entry_hash(data: dict[str, Any]) -> str:
    """SHA-256 over every field except entry_hash, with sorted keys."""
    payload = {k: v for k, v in data.items() if k != "entry_hash"}
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()


def diff_fields(
    before: dict[str, Any],
    after: dict[str, Any],
    fields: Sequence[str] | None = None,
) -> list[FieldChange]:
    """Field-level changes between two dumps, in ``fields`` order (or key order)."""
    keys = fields if fields is not None else sorted(set(before) | set(after))
    return [
        FieldChange(field=k, old_value=before.get(k), new_value=after.get(k))
        for k in keys
        if before.get(k) != after.get(k)
    ]


class AuditRecorder:
    """The single write path for audit entries."""

    def __init__(
        self,
        store: Store,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or utc_now

    def record(
        self,
        txn: Transaction,
        actor: Actor,
        action: str,
        entity_type: str,
        entity_id: str,
        changes: Sequence[FieldChange] = (),
        note: str | None = None,
    ) -> AuditLogEntry:
        """Append an entry inside ``txn``.

        Returns the created entry (with computed hashes). Storage errors
        propagate and abort the enclosing transaction.
        """
        last = txn.tail(AUDIT_LOG)
        prev_hash = last.get("entry_hash", GENESIS_HASH) if last else GENESIS_HASH

        entry = AuditLogEntry(
            id=f"aud-{uuid.uuid4().hex[:12]}",
            timestamp=self._clock(),
            actor_id=actor.id,
            actor_name=actor.name,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            change_note=note,
            changes=list(changes),
            prev_hash=prev_hash,
        )
        entry.entry_hash = compute_entry_hash(entry.model_dump(mode="json"))
        txn.append(AUDIT_LOG, entry.model_dump(mode="json"))

        logger.debug("audit %s %s/%s by %s", action, entity_type, entity_id, actor.id)
        return entry

    def read_entries(self) -> list[AuditLogEntry]:
        """All entries in write order."""
        return [AuditLogEntry(**data) for data in self._store.read_log(AUDIT_LOG)]

    def query(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        actor_id: str | None = None,
        action: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[AuditLogEntry]:
        """Filtered entries, newest first."""
        entries = self.read_entries()

        if entity_type:
            entries = [e for e in entries if e.entity_type == entity_type]
        if entity_id:
            entries = [e for e in entries if e.entity_id == entity_id]
        if actor_id:
            entries = [e for e in entries if e.actor_id == actor_id]
        if action:
            entries = [e for e in entries if e.action == action]
        if since:
            entries = [e for e in entries if e.timestamp >= since]
        if until:
            entries = [e for e in entries if e.timestamp <= until]

        # Stable on equal timestamps: later writes stay ahead
        entries = list(reversed(entries))
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit] if limit is not None else entries

    def verify(self) -> tuple[bool, list[str]]:
        """Verify the integrity of the hash chain.

        Returns (is_valid, list_of_errors).
        An empty error list means the trail is intact.
        """
        errors: list[str] = []
        prev_hash = GENESIS_HASH

        for i, data in enumerate(self._store.read_log(AUDIT_LOG), start=1):
            stored_prev = data.get("prev_hash", "")
            if stored_prev != prev_hash:
                errors.append(
                    f"Entry {i}: chain broken: "
                    f"expected prev_hash {prev_hash[:16]}..., "
                    f"got {stored_prev[:16]}..."
                )

            stored_hash = data.get("entry_hash", "")
            recomputed = compute_entry_hash(data)
            if stored_hash != recomputed:
                errors.append(
                    f"Entry {i}: hash mismatch: "
                    f"stored {stored_hash[:16]}..., "
                    f"computed {recomputed[:16]}..."
                )

            prev_hash = stored_hash

        return len(errors) == 0, errors
