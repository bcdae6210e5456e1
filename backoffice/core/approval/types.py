"""Plain records passed between the engine and its stores.

Stores hand out copies; mutating a record never changes persisted state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .states import RequestStatus, WorkflowStatus, is_terminal


@dataclass
class WorkflowDefinition:
    """Reusable approval template for one entity type."""

    name: str
    entity_type: str
    workflow_type: str
    id: Optional[int] = None
    description: Optional[str] = None
    is_active: bool = True
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class WorkflowStep:
    """One position in a definition's approval chain."""

    workflow_definition_id: int
    step_order: int
    approver_type: str
    approver_value: str
    id: Optional[int] = None
    is_optional: bool = False
    auto_approve_after_hours: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class WorkflowInstance:
    """One run of a definition against a specific entity."""

    workflow_definition_id: int
    entity_type: str
    entity_id: int
    initiated_by: str
    id: Optional[int] = None
    status: str = WorkflowStatus.IN_PROGRESS.value
    current_step: int = 1
    initiated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)


@dataclass
class ActiveWorkflow(WorkflowInstance):
    """An in-flight instance together with its definition's name and type."""

    workflow_name: Optional[str] = None
    workflow_type: Optional[str] = None


@dataclass
class ApprovalRequest:
    """The actionable unit offered to one approver for one step."""

    workflow_instance_id: int
    step_id: int
    approver_email: str
    id: Optional[int] = None
    status: str = RequestStatus.PENDING.value
    decision_at: Optional[datetime] = None
    decision_comment: Optional[str] = None
    reminder_sent_at: Optional[datetime] = None
    reminder_count: int = 0
    created_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING.value


@dataclass
class PendingApproval(ApprovalRequest):
    """A pending request enriched with what it is asking about."""

    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    workflow_name: Optional[str] = None


@dataclass
class ApprovalHistoryEntry:
    """Append-only audit record of one workflow action."""

    workflow_instance_id: int
    action: str
    actor_email: str
    id: Optional[int] = None
    step_id: Optional[int] = None
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class DefinitionDetail:
    definition: WorkflowDefinition
    steps: List[WorkflowStep] = field(default_factory=list)


@dataclass
class InstanceDetail:
    """An instance with its requests and timeline, as shown on dashboards."""

    instance: WorkflowInstance
    requests: List[ApprovalRequest] = field(default_factory=list)
    history: List[ApprovalHistoryEntry] = field(default_factory=list)
