"""Storage protocol shared by every engine component.

Entities live in named collections keyed by their id, each record carrying
an integer version used as an optimistic-concurrency token. Append-only
logs (the audit trail) live in separate ordered collections.

All mutations happen inside ``Store.transaction()``: writes are staged and
committed together on normal exit, or discarded together if the block
raises. A domain change and its audit entry therefore always land (or
fail) as one unit.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ValidationError

from disclosure_governance.errors import ConflictError, InvalidInputError

DATA_POINTS = "data_points"
EXCEPTIONS = "completion_exceptions"
PLANS = "remediation_plans"
ACTIONS = "remediation_actions"
PERIODS = "reporting_periods"
GENERATIONS = "generations"
SNAPSHOTS = "generation_snapshots"
EXPORTS = "exports"
ACCESS_REQUESTS = "access_requests"
AUDIT_LOG = "audit_log"

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class Record:
    """A stored entity payload and its concurrency token."""

    key: str
    data: dict[str, Any]
    version: int


@runtime_checkable
class Transaction(Protocol):
    """A unit of work against a store."""

    def get(self, collection: str, key: str) -> Record | None: ...

    def list(self, collection: str) -> list[Record]: ...

    def put(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
        expected_version: int,
    ) -> int:
        """Write a record. ``expected_version`` 0 means it must not exist yet.

        Returns the new version. Raises ConflictError on a stale version.
        """
        ...

    def delete(self, collection: str, key: str, expected_version: int) -> None: ...

    def append(self, collection: str, data: dict[str, Any]) -> None: ...

    def tail(self, collection: str) -> dict[str, Any] | None: ...


@runtime_checkable
class Store(Protocol):
    """Protocol for storage backends."""

    def get(self, collection: str, key: str) -> Record | None: ...

    def list(self, collection: str) -> list[Record]: ...

    def read_log(self, collection: str) -> list[dict[str, Any]]: ...

    def transaction(self) -> AbstractContextManager[Transaction]: ...


def check_version(collection: str, key: str, expected: int, actual: int | None) -> None:
    """Raise ConflictError unless the stored version matches the expected one."""
    if expected == 0 and actual is None:
        return
    if actual != expected:
        raise ConflictError(collection, key, expected, actual)


def load(source: Store | Transaction, model: type[M], collection: str, key: str) -> M | None:
    """Read a record and hydrate it into ``model`` with its version attached."""
    record = source.get(collection, key)
    if record is None:
        return None
    return to_model(model, record)


def load_all(source: Store | Transaction, model: type[M], collection: str) -> Iterator[M]:
    for record in source.list(collection):
        yield to_model(model, record)


def to_model(model: type[M], record: Record) -> M:
    return model.model_validate({**record.data, "version": record.version})


def save(txn: Transaction, collection: str, entity: M) -> M:
    """Persist ``entity`` guarded by its current version; return it with the new one."""
    data = entity.model_dump(mode="json", exclude={"version"})
    version = txn.put(collection, entity.id, data, expected_version=entity.version)
    return entity.model_copy(update={"version": version})


def remove(txn: Transaction, collection: str, entity: BaseModel) -> None:
    txn.delete(collection, entity.id, expected_version=entity.version)


def apply_changes(entity: M, changes: dict[str, Any]) -> M:
    """Return a copy of ``entity`` with ``changes`` applied and re-validated.

    Raises InvalidInputError naming the first offending field, so a wrongly
    typed edit never reaches the store.
    """
    try:
        return type(entity).model_validate({**entity.model_dump(), **changes})
    except ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or None
        raise InvalidInputError(f"Invalid value for {field}: {error['msg']}", field=field) from exc
