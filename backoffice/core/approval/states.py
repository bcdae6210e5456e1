"""Approval workflow states and transitions.

State Machine Diagram (workflow instance):

    ┌──────────┐
    │ PENDING  │ (reserved, instances are created in progress)
    └────┬─────┘
         │
    ┌────▼────────┐
    │ IN_PROGRESS │ ← Initial state (StartWorkflow)
    └────┬────────┘
         │
         ├──────────────┬──────────────┐
         │              │              │
    ┌────▼─────┐  ┌─────▼────┐  ┌──────▼────┐
    │ APPROVED │  │ REJECTED │  │ CANCELLED │
    └──────────┘  └──────────┘  └───────────┘

Approval requests only ever move forward:

    PENDING ─► APPROVED | REJECTED | SKIPPED
"""

from enum import Enum
from typing import Dict, NamedTuple, Set, Type, TypeVar

from .errors import InvalidEntityType, InvalidWorkflowType, InvalidStepConfiguration


class EntityType(str, Enum):
    """Business entities that can be routed through an approval workflow."""
    
    PROPOSAL = "proposal"
    INVOICE = "invoice"
    CONTRACT = "contract"
    DELIVERABLE = "deliverable"
    PROJECT = "project"


class WorkflowType(str, Enum):
    """Completion semantics of a workflow definition."""
    
    SEQUENTIAL = "sequential"   # Steps go live one at a time, in order
    PARALLEL = "parallel"       # Every required step must approve
    ANY_ONE = "any_one"         # First approval wins


class WorkflowStatus(str, Enum):
    """States of a workflow instance."""
    
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    
    # Terminal states
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class RequestStatus(str, Enum):
    """States of a single approval request."""
    
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class ApproverType(str, Enum):
    """How a step's approver_value is interpreted."""
    
    USER = "user"       # approver_value is an email address
    ROLE = "role"       # approver_value is a role name
    CLIENT = "client"   # approver_value is the client's email address


class HistoryAction(str, Enum):
    """Actions recorded in the approval history."""
    
    INITIATED = "initiated"
    APPROVED = "approved"
    AUTO_APPROVED = "auto_approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class StatusRule(NamedTuple):
    """Defines a valid status change."""
    from_status: str
    to_status: str


WORKFLOW_RULES: list[StatusRule] = [
    StatusRule(WorkflowStatus.PENDING, WorkflowStatus.IN_PROGRESS),
    StatusRule(WorkflowStatus.PENDING, WorkflowStatus.CANCELLED),
    StatusRule(WorkflowStatus.IN_PROGRESS, WorkflowStatus.APPROVED),
    StatusRule(WorkflowStatus.IN_PROGRESS, WorkflowStatus.REJECTED),
    StatusRule(WorkflowStatus.IN_PROGRESS, WorkflowStatus.CANCELLED),
]

REQUEST_RULES: list[StatusRule] = [
    StatusRule(RequestStatus.PENDING, RequestStatus.APPROVED),
    StatusRule(RequestStatus.PENDING, RequestStatus.REJECTED),
    StatusRule(RequestStatus.PENDING, RequestStatus.SKIPPED),
]


def _build_lookup(rules: list[StatusRule]) -> Dict[str, Set[str]]:
    lookup: Dict[str, Set[str]] = {}
    for rule in rules:
        lookup.setdefault(rule.from_status, set()).add(rule.to_status)
    return lookup


WORKFLOW_TRANSITIONS: Dict[str, Set[str]] = _build_lookup(WORKFLOW_RULES)
REQUEST_TRANSITIONS: Dict[str, Set[str]] = _build_lookup(REQUEST_RULES)

# Terminal states (no outgoing transitions)
TERMINAL_WORKFLOW_STATES: Set[WorkflowStatus] = {
    WorkflowStatus.APPROVED,
    WorkflowStatus.REJECTED,
    WorkflowStatus.CANCELLED,
}

# Instances still waiting on approvers
ACTIVE_WORKFLOW_STATES: Set[WorkflowStatus] = {
    WorkflowStatus.PENDING,
    WorkflowStatus.IN_PROGRESS,
}


def can_transition_workflow(from_status: str, to_status: str) -> bool:
    """Check if a workflow instance may move between two statuses."""
    return WorkflowStatus(to_status) in WORKFLOW_TRANSITIONS.get(WorkflowStatus(from_status), set())


def can_transition_request(from_status: str, to_status: str) -> bool:
    """Check if an approval request may move between two statuses."""
    return RequestStatus(to_status) in REQUEST_TRANSITIONS.get(RequestStatus(from_status), set())


def is_terminal(status: str) -> bool:
    return WorkflowStatus(status) in TERMINAL_WORKFLOW_STATES


E = TypeVar("E", bound=Enum)


def _coerce(enum_cls: Type[E], value, error: Type[Exception]) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise error(value) from None


def parse_entity_type(value) -> EntityType:
    """Coerce a stored or user supplied value to an EntityType."""
    return _coerce(EntityType, value, InvalidEntityType)


def parse_workflow_type(value) -> WorkflowType:
    """Coerce a stored or user supplied value to a WorkflowType.

    Raises:
        InvalidWorkflowType: If the value is not a known workflow type
    """
    return _coerce(WorkflowType, value, InvalidWorkflowType)


def parse_approver_type(value) -> ApproverType:
    try:
        return ApproverType(value)
    except ValueError:
        raise InvalidStepConfiguration(f"Unknown approver type: {value!r}") from None
