"""Request and response schemas for the approvals API."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from backoffice.core.approval import ApproverType, EntityType, WorkflowType


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Definitions
class WorkflowStepCreate(BaseModel):
    step_order: Optional[int] = Field(None, ge=1, description="Defaults to the next free position")
    approver_type: ApproverType
    approver_value: str = Field(..., min_length=1)
    is_optional: bool = False
    auto_approve_after_hours: Optional[int] = Field(None, ge=0)


class WorkflowDefinitionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    entity_type: EntityType
    workflow_type: WorkflowType = WorkflowType.SEQUENTIAL
    description: Optional[str] = None
    is_default: bool = False
    is_active: bool = True
    steps: List[WorkflowStepCreate] = []


class WorkflowDefinitionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None


class WorkflowStepResponse(ORMModel):
    id: int
    workflow_definition_id: int
    step_order: int
    approver_type: str
    approver_value: str
    is_optional: bool
    auto_approve_after_hours: Optional[int]
    created_at: Optional[datetime]


class WorkflowDefinitionResponse(ORMModel):
    id: int
    name: str
    description: Optional[str]
    entity_type: str
    workflow_type: str
    is_active: bool
    is_default: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class WorkflowDefinitionDetailResponse(WorkflowDefinitionResponse):
    steps: List[WorkflowStepResponse] = []


# Instances
class StartWorkflowRequest(BaseModel):
    entity_type: EntityType
    entity_id: int
    workflow_definition_id: Optional[int] = None
    notes: Optional[str] = None


class CancelWorkflowRequest(BaseModel):
    reason: Optional[str] = None


class WorkflowInstanceResponse(ORMModel):
    id: int
    workflow_definition_id: int
    entity_type: str
    entity_id: int
    status: str
    current_step: int
    initiated_by: str
    initiated_at: Optional[datetime]
    completed_at: Optional[datetime]
    notes: Optional[str]


class ActiveWorkflowResponse(WorkflowInstanceResponse):
    workflow_name: Optional[str]
    workflow_type: Optional[str]


class ApprovalRequestResponse(ORMModel):
    id: int
    workflow_instance_id: int
    step_id: int
    approver_email: str
    status: str
    decision_at: Optional[datetime]
    decision_comment: Optional[str]
    reminder_sent_at: Optional[datetime]
    reminder_count: int
    created_at: Optional[datetime]


class PendingApprovalResponse(ApprovalRequestResponse):
    entity_type: Optional[str]
    entity_id: Optional[int]
    workflow_name: Optional[str]


class ApprovalHistoryResponse(ORMModel):
    id: int
    workflow_instance_id: int
    step_id: Optional[int]
    action: str
    actor_email: str
    comment: Optional[str]
    created_at: Optional[datetime]


class WorkflowInstanceDetailResponse(ORMModel):
    instance: WorkflowInstanceResponse
    requests: List[ApprovalRequestResponse]
    history: List[ApprovalHistoryResponse]


# Decisions
class ApprovalAction(BaseModel):
    comment: Optional[str] = None


class RejectionAction(BaseModel):
    reason: str = Field(..., min_length=1)


class BatchApprovalRequest(BaseModel):
    request_ids: List[int] = Field(..., min_length=1)
    comment: Optional[str] = None


class BatchApprovalResponse(BaseModel):
    approved: List[int] = []
    rejected: List[int] = []
    failed: List[dict] = []
