"""
Shared fixtures for Wake Memory tests
Copyright 2025 Jurden Bruce
"""

import uuid
from datetime import datetime, timedelta

import pytest

from wake_memory.config import WakeConfig
from wake_memory.context_service import ContextService
from wake_memory.models import ActionType, CausalityMetadata, Snapshot, calculate_tier
from wake_memory.storage.sqlite_store import SQLiteStore

START = datetime(2025, 6, 1, 12, 0, 0)


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    store = SQLiteStore(":memory:", clock=clock)
    yield store
    store.close()


@pytest.fixture
def service(store, clock):
    return ContextService(store, config=WakeConfig(), clock=clock)


@pytest.fixture
def make_snapshot(store, clock):
    """Factory that saves a snapshot with explicit fields

    created_at defaults to the clock; hours_ago shifts it back.
    """
    def _make(
        project="wake",
        summary="context",
        hours_ago=0.0,
        action_type=ActionType.CONVERSATION,
        rationale="testing",
        caused_by=None,
        dependencies=(),
        with_causality=True,
        save=True,
        **fields,
    ) -> Snapshot:
        causality = None
        if with_causality:
            causality = CausalityMetadata(
                action_type=action_type,
                rationale=rationale,
                dependencies=dependencies,
                caused_by=caused_by,
            )
        created_at = fields.pop("created_at", clock() - timedelta(hours=hours_ago))
        fields.setdefault("memory_tier", calculate_tier(created_at, fields.get("last_accessed_at"), clock()))
        snapshot = Snapshot(
            id=fields.pop("id", str(uuid.uuid4())),
            project=project,
            summary=summary,
            created_at=created_at,
            causality=causality,
            **fields,
        )
        if save:
            store.save(snapshot)
        return snapshot

    return _make
