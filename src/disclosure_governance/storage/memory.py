"""In-memory store.

Thread-safe via a single re-entrant lock: transactions are serialized, so
two writers can never interleave on the same entity. Writes are staged
inside the transaction and only become visible on commit.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from disclosure_governance.storage.base import Record, check_version


class _MemoryTransaction:
    """Staged view over an InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store
        # (collection, key) -> Record, or None for a staged delete
        self._staged: dict[tuple[str, str], Record | None] = {}
        self._appended: dict[str, list[dict[str, Any]]] = {}

    def get(self, collection: str, key: str) -> Record | None:
        if (collection, key) in self._staged:
            record = self._staged[(collection, key)]
        else:
            record = self._store._entities.get(collection, {}).get(key)
        return copy.deepcopy(record)

    def list(self, collection: str) -> list[Record]:
        keys = list(self._store._entities.get(collection, {}))
        keys += [k for (c, k) in self._staged if c == collection and k not in keys]
        records = (self.get(collection, k) for k in keys)
        return [r for r in records if r is not None]

    def put(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
        expected_version: int,
    ) -> int:
        current = self.get(collection, key)
        check_version(collection, key, expected_version, current.version if current else None)
        version = expected_version + 1
        self._staged[(collection, key)] = Record(key=key, data=copy.deepcopy(data), version=version)
        return version

    def delete(self, collection: str, key: str, expected_version: int) -> None:
        current = self.get(collection, key)
        check_version(collection, key, expected_version, current.version if current else None)
        self._staged[(collection, key)] = None

    def append(self, collection: str, data: dict[str, Any]) -> None:
        self._appended.setdefault(collection, []).append(copy.deepcopy(data))

    def tail(self, collection: str) -> dict[str, Any] | None:
        pending = self._appended.get(collection)
        if pending:
            return copy.deepcopy(pending[-1])
        committed = self._store._logs.get(collection)
        return copy.deepcopy(committed[-1]) if committed else None

    def _commit(self) -> None:
        for (collection, key), record in self._staged.items():
            bucket = self._store._entities.setdefault(collection, {})
            if record is None:
                bucket.pop(key, None)
            else:
                bucket[key] = record
        for collection, entries in self._appended.items():
            self._store._logs.setdefault(collection, []).extend(entries)


class InMemoryStore:
    """Process-local store for tests and single-process embedding."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entities: dict[str, dict[str, Record]] = {}
        self._logs: dict[str, list[dict[str, Any]]] = {}

    def get(self, collection: str, key: str) -> Record | None:
        with self._lock:
            return copy.deepcopy(self._entities.get(collection, {}).get(key))

    def list(self, collection: str) -> list[Record]:
        with self._lock:
            return copy.deepcopy(list(self._entities.get(collection, {}).values()))

    def read_log(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._logs.get(collection, []))

    @contextmanager
    def transaction(self) -> Iterator[_MemoryTransaction]:
        with self._lock:
            txn = _MemoryTransaction(self)
            yield txn
            txn._commit()
