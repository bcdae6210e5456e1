"""Database models for the back office."""

from backoffice.db.models.approval import (
    WorkflowDefinitionModel,
    WorkflowStepModel,
    WorkflowInstanceModel,
    ApprovalRequestModel,
    ApprovalHistoryModel,
)

__all__ = [
    "WorkflowDefinitionModel",
    "WorkflowStepModel",
    "WorkflowInstanceModel",
    "ApprovalRequestModel",
    "ApprovalHistoryModel",
]
