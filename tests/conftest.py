from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api import app, get_clock, get_inbox, get_project_ids, get_uow, get_worker_ids
from application import NotificationInbox
from infrastructure import InMemoryKeyValueStore, KeyValueUnitOfWork
from service import IdGenerator

NOW = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def uow(store) -> KeyValueUnitOfWork:
    return KeyValueUnitOfWork(store)


@pytest.fixture
def client(store, clock):
    inbox = NotificationInbox()
    worker_ids, project_ids = IdGenerator(), IdGenerator()
    app.dependency_overrides[get_uow] = lambda: KeyValueUnitOfWork(store)
    app.dependency_overrides[get_inbox] = lambda: inbox
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_worker_ids] = lambda: worker_ids
    app.dependency_overrides[get_project_ids] = lambda: project_ids
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
