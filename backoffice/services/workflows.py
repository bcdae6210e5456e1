"""Wiring of the approval engine onto a database session."""

from typing import Iterable, Optional

from sqlalchemy.orm import Session

from backoffice.core.approval.engine import WorkflowEngine
from backoffice.core.approval.events import WorkflowObserver
from backoffice.core.approval.resolver import ApproverResolver, StaticRoleResolver
from backoffice.core.clock import Clock
from backoffice.core.config import Settings, get_settings
from backoffice.db.stores import SqlDefinitionStore, SqlInstanceStore
from backoffice.services.notifications import get_notifier


def build_workflow_engine(
    db: Session,
    settings: Optional[Settings] = None,
    *,
    clock: Optional[Clock] = None,
    observers: Optional[Iterable[WorkflowObserver]] = None,
) -> WorkflowEngine:
    """
    Build a WorkflowEngine whose units of work run in ``db``.
    
    Events are held back until the caller commits ``db`` and calls
    ``engine.flush_events()``, so no notification goes out while the
    transaction still holds row locks.
    
    Args:
        db: Database session; the caller commits
        settings: Application settings (role membership)
        clock: Time source, the system clock by default
        observers: Event receivers; the process-wide notifier by default
    """
    settings = settings or get_settings()
    if observers is None:
        observers = [get_notifier()]
    
    return WorkflowEngine(
        SqlDefinitionStore(db),
        SqlInstanceStore(db),
        ApproverResolver(StaticRoleResolver(settings.role_members_map)),
        clock=clock,
        observers=observers,
        defer_events=True,
    )
