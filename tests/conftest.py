"""Shared fixtures: a controllable clock and an isolated in-memory store per test."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from gate.engine import ConstraintEngine
from gate.providers import Clock, ConnectivityState
from storage.memory import InMemoryTimestampStore

T0 = datetime(2024, 3, 20, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock(Clock):
    def __init__(self, at: datetime = T0):
        self.at = at

    def now(self) -> datetime:
        return self.at

    def advance(self, **kwargs: float) -> None:
        self.at = self.at + timedelta(**kwargs)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> InMemoryTimestampStore:
    return InMemoryTimestampStore()


@pytest.fixture
def make_engine(store: InMemoryTimestampStore, clock: FixedClock):
    def _make(identifier: str = "task", connectivity: ConnectivityState | None = None) -> ConstraintEngine:
        return ConstraintEngine(identifier, store=store, clock=clock, connectivity=connectivity)

    return _make
