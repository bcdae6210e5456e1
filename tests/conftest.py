"""Pytest configuration and shared fixtures."""

from typing import List

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice.core.approval import (
    ApproverResolver,
    StaticRoleResolver,
    WorkflowEngine,
    WorkflowEvent,
    WorkflowEventType,
)
from backoffice.core.approval.memory import InMemoryDefinitionStore, InMemoryInstanceStore
from backoffice.core.clock import FrozenClock
from backoffice.db import models  # noqa: F401
from backoffice.db.base import Base
from backoffice.db.session import create_db_engine
from backoffice.db.stores import SqlDefinitionStore, SqlInstanceStore


ROLE_MEMBERS = {
    "admin": ["owner@example.com", "ops@example.com"],
    "finance": ["cfo@example.com"],
}


class RecordingObserver:
    """Observer keeping every event it receives."""

    def __init__(self):
        self.events: List[WorkflowEvent] = []

    def notify(self, event: WorkflowEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: WorkflowEventType) -> List[WorkflowEvent]:
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def clock():
    """Clock frozen at 2026-01-05 09:00 UTC."""
    return FrozenClock()


@pytest.fixture
def db_engine():
    """In-memory SQLite database shared by every connection of the test."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Database session rolled back after the test."""
    session = sessionmaker(bind=db_engine, autoflush=False)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(params=["memory", "sql"])
def stores(request):
    """(definition store, instance store) for each backend."""
    if request.param == "memory":
        return InMemoryDefinitionStore(), InMemoryInstanceStore()
    db = request.getfixturevalue("db_session")
    return SqlDefinitionStore(db), SqlInstanceStore(db)


@pytest.fixture
def role_resolver():
    return StaticRoleResolver(ROLE_MEMBERS)


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def engine(stores, clock, observer, role_resolver):
    """WorkflowEngine over each store backend."""
    definitions, instances = stores
    return WorkflowEngine(
        definitions,
        instances,
        ApproverResolver(role_resolver),
        clock=clock,
        observers=[observer],
    )


@pytest.fixture
def memory_engine(clock, observer, role_resolver):
    """WorkflowEngine over the in-memory stores only."""
    return WorkflowEngine(
        InMemoryDefinitionStore(),
        InMemoryInstanceStore(),
        ApproverResolver(role_resolver),
        clock=clock,
        observers=[observer],
    )
