"""Approval workflow module.

Implements the generic approval workflow engine: definitions and steps,
instances, approval requests and their history, with sequential, parallel
and any-one completion semantics.
"""

from .states import (
    ApproverType,
    EntityType,
    HistoryAction,
    RequestStatus,
    WorkflowStatus,
    WorkflowType,
    TERMINAL_WORKFLOW_STATES,
)
from .errors import (
    AlreadyProcessed,
    DefinitionNotFound,
    InstanceNotActive,
    InstanceNotFound,
    InvalidEntityType,
    InvalidStepConfiguration,
    InvalidWorkflowType,
    NoStepsConfigured,
    RequestNotFound,
    WorkflowConfigurationError,
    WorkflowError,
)
from .types import (
    ActiveWorkflow,
    ApprovalHistoryEntry,
    ApprovalRequest,
    DefinitionDetail,
    InstanceDetail,
    PendingApproval,
    WorkflowDefinition,
    WorkflowInstance,
    WorkflowStep,
)
from .events import WorkflowEvent, WorkflowEventType, WorkflowObserver
from .resolver import ApproverResolver, RoleResolver, StaticRoleResolver
from .registry import DefinitionRegistry
from .engine import WorkflowEngine
from .sweeps import AutoApprovalSweeper, ReminderSweeper, SweepResult

__all__ = [
    "ApproverType",
    "EntityType",
    "HistoryAction",
    "RequestStatus",
    "WorkflowStatus",
    "WorkflowType",
    "TERMINAL_WORKFLOW_STATES",
    "AlreadyProcessed",
    "DefinitionNotFound",
    "InstanceNotActive",
    "InstanceNotFound",
    "InvalidEntityType",
    "InvalidStepConfiguration",
    "InvalidWorkflowType",
    "NoStepsConfigured",
    "RequestNotFound",
    "WorkflowConfigurationError",
    "WorkflowError",
    "ActiveWorkflow",
    "ApprovalHistoryEntry",
    "ApprovalRequest",
    "DefinitionDetail",
    "InstanceDetail",
    "PendingApproval",
    "WorkflowDefinition",
    "WorkflowInstance",
    "WorkflowStep",
    "WorkflowEvent",
    "WorkflowEventType",
    "WorkflowObserver",
    "ApproverResolver",
    "RoleResolver",
    "StaticRoleResolver",
    "DefinitionRegistry",
    "WorkflowEngine",
    "AutoApprovalSweeper",
    "ReminderSweeper",
    "SweepResult",
]
