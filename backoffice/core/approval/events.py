"""Workflow events delivered to observers after a unit of work succeeds."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol

from .types import ApprovalRequest, WorkflowInstance


class WorkflowEventType(str, Enum):
    APPROVAL_PENDING = "approval_pending"       # A request went live
    APPROVAL_REMINDER = "approval_reminder"     # A pending request is overdue
    WORKFLOW_COMPLETED = "workflow_completed"   # Instance reached a terminal state


@dataclass(frozen=True)
class WorkflowEvent:
    event_type: WorkflowEventType
    instance: WorkflowInstance
    occurred_at: datetime
    request: Optional[ApprovalRequest] = None


class WorkflowObserver(Protocol):
    """Receives workflow events, e.g. the notification gateway."""

    def notify(self, event: WorkflowEvent) -> None: ...
