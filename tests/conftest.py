"""Shared fixtures for the governance engine tests."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from disclosure_governance.audit.recorder import AuditRecorder
from disclosure_governance.models import Actor
from disclosure_governance.storage.memory import InMemoryStore
from disclosure_governance.storage.sqlite import SQLiteStore


class FakeClock:
    """Deterministic clock that moves forward one second per reading."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2026, 3, 15, 9, 0, tzinfo=UTC)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        yield InMemoryStore()
    else:
        s = SQLiteStore(tmp_path / "governance.db")
        yield s
        s.close()


@pytest.fixture()
def recorder(store, clock) -> AuditRecorder:
    return AuditRecorder(store, clock=clock)


@pytest.fixture()
def alice() -> Actor:
    return Actor(id="u-alice", name="Alice Analyst")


@pytest.fixture()
def bob() -> Actor:
    return Actor(id="u-bob", name="Bob Reviewer")
