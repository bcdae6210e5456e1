"""Workflow advancement rules.

Pure decision logic: given a definition's workflow type, its steps and the
current requests of an instance, decide whether the instance waits, moves to
its next sequential step, or completes. The engine applies the decision.
"""

from enum import Enum
from typing import FrozenSet, List, NamedTuple, Optional, Sequence

from .errors import WorkflowConfigurationError, WorkflowError
from .states import (
    RequestStatus,
    WorkflowStatus,
    WorkflowType,
    can_transition_workflow,
    parse_workflow_type,
)
from .types import ApprovalRequest, WorkflowInstance, WorkflowStep


class TransitionError(WorkflowError):
    """Raised when an instance status change is not allowed."""
    
    code = "invalid_transition"
    
    def __init__(self, instance_id: Optional[int], from_status: str, to_status: str):
        super().__init__(f"Cannot move workflow instance {instance_id} from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class Outcome(str, Enum):
    WAIT = "wait"
    ADVANCE = "advance"
    COMPLETE = "complete"


class Advancement(NamedTuple):
    """Decision produced after a request was approved."""
    outcome: Outcome
    next_step: Optional[WorkflowStep] = None
    # Steps that no longer need answers; their pending requests get skipped
    settled_step_ids: FrozenSet[int] = frozenset()


def check_transition(instance: WorkflowInstance, to_status: WorkflowStatus) -> WorkflowStatus:
    """Validate an instance status change and return the target status."""
    if not can_transition_workflow(instance.status, to_status):
        raise TransitionError(instance.id, instance.status, WorkflowStatus(to_status).value)
    return WorkflowStatus(to_status)


def _approved_step_ids(requests: Sequence[ApprovalRequest]) -> FrozenSet[int]:
    return frozenset(r.step_id for r in requests if r.status == RequestStatus.APPROVED.value)


def evaluate_any_one(requests: Sequence[ApprovalRequest]) -> Advancement:
    """First approval wins."""
    approved = _approved_step_ids(requests)
    if approved:
        return Advancement(Outcome.COMPLETE, settled_step_ids=approved)
    return Advancement(Outcome.WAIT)


def evaluate_parallel(steps: Sequence[WorkflowStep], requests: Sequence[ApprovalRequest]) -> Advancement:
    """Complete once every required step that was asked has an approved request.

    Only steps with requests on this instance count, so steps added to the
    definition after the instance started never block it. Optional steps never
    block completion while they are still pending.
    """
    optional = {s.id for s in steps if s.is_optional}
    approved = _approved_step_ids(requests)
    required = {r.step_id for r in requests if r.step_id not in optional}
    if required <= approved:
        return Advancement(Outcome.COMPLETE, settled_step_ids=approved)
    return Advancement(Outcome.WAIT, settled_step_ids=approved)


def evaluate_sequential(
    current_step: int,
    steps: Sequence[WorkflowStep],
    requests: Sequence[ApprovalRequest],
) -> Advancement:
    """Move to the next step only after the live step is approved.

    Raises:
        WorkflowConfigurationError: If current_step matches no step or the
            live step has no request
    """
    live = next((s for s in steps if s.step_order == current_step), None)
    if live is None:
        raise WorkflowConfigurationError(f"Current step {current_step} matches no configured step")
    
    live_requests = [r for r in requests if r.step_id == live.id]
    if not live_requests:
        raise WorkflowConfigurationError(f"Live step {current_step} has no approval request")
    
    if not any(r.status == RequestStatus.APPROVED.value for r in live_requests):
        return Advancement(Outcome.WAIT)
    
    later: List[WorkflowStep] = [s for s in steps if s.step_order > current_step]
    settled = frozenset({live.id})
    if later:
        next_step = min(later, key=lambda s: s.step_order)
        return Advancement(Outcome.ADVANCE, next_step=next_step, settled_step_ids=settled)
    return Advancement(Outcome.COMPLETE, settled_step_ids=settled)


def evaluate_advancement(
    workflow_type,
    current_step: int,
    steps: Sequence[WorkflowStep],
    requests: Sequence[ApprovalRequest],
) -> Advancement:
    """Dispatch on the workflow type.

    Raises:
        InvalidWorkflowType: If the stored workflow type is unknown
    """
    workflow_type = parse_workflow_type(workflow_type)
    if workflow_type is WorkflowType.ANY_ONE:
        return evaluate_any_one(requests)
    if workflow_type is WorkflowType.PARALLEL:
        return evaluate_parallel(steps, requests)
    return evaluate_sequential(current_step, steps, requests)
