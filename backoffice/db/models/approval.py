"""Approval workflow database models.

Stores workflow templates, running instances, the requests sent to
approvers and the append-only history of every workflow action.
"""

from datetime import datetime, timezone
from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from backoffice.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class WorkflowDefinitionModel(Base):
    """
    Reusable approval workflow template.
    
    At most one active definition per entity type is flagged as default.
    """
    __tablename__ = "approval_workflow_definitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    entity_type = Column(String(50), nullable=False, index=True)  # proposal, invoice, contract, ...
    workflow_type = Column(String(50), nullable=False, default="sequential")  # sequential, parallel, any_one
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_default = Column(Boolean, nullable=False, default=False)
    
    # Timestamps
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
    
    # Relationships
    steps = relationship(
        "WorkflowStepModel",
        back_populates="definition",
        order_by="WorkflowStepModel.step_order",
        cascade="all, delete-orphan",
    )
    
    def __repr__(self) -> str:
        return f"<WorkflowDefinition {self.name} [{self.entity_type}/{self.workflow_type}]>"


class WorkflowStepModel(Base):
    """One approver position within a definition."""
    __tablename__ = "approval_workflow_steps"
    __table_args__ = (
        UniqueConstraint("workflow_definition_id", "step_order", name="uq_approval_steps_definition_order"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workflow_definition_id = Column(
        Integer,
        ForeignKey("approval_workflow_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_order = Column(Integer, nullable=False)
    approver_type = Column(String(20), nullable=False)  # user, role, client
    approver_value = Column(String(255), nullable=False)  # email, role name, or client email
    is_optional = Column(Boolean, nullable=False, default=False)
    auto_approve_after_hours = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    
    definition = relationship("WorkflowDefinitionModel", back_populates="steps")
    
    def __repr__(self) -> str:
        return f"<WorkflowStep #{self.step_order} {self.approver_type}:{self.approver_value}>"


class WorkflowInstanceModel(Base):
    """A workflow run for one entity."""
    __tablename__ = "approval_workflow_instances"
    __table_args__ = (
        Index("idx_approval_instances_entity", "entity_type", "entity_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workflow_definition_id = Column(
        Integer,
        ForeignKey("approval_workflow_definitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=False)
    
    # Workflow state
    status = Column(String(20), nullable=False, default="pending", index=True)
    current_step = Column(Integer, nullable=False, default=1)
    
    initiated_by = Column(String(255), nullable=False)
    initiated_at = Column(DateTime, default=_utcnow)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    
    # Relationships
    definition = relationship("WorkflowDefinitionModel")
    requests = relationship("ApprovalRequestModel", back_populates="instance", order_by="ApprovalRequestModel.id")
    history = relationship("ApprovalHistoryModel", back_populates="instance", order_by="ApprovalHistoryModel.id")
    
    def __repr__(self) -> str:
        return f"<WorkflowInstance {self.entity_type}#{self.entity_id} [{self.status}]>"


class ApprovalRequestModel(Base):
    """A decision asked of one approver for one step of one instance."""
    __tablename__ = "approval_requests"
    __table_args__ = (
        Index("idx_approval_requests_approver", "approver_email", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workflow_instance_id = Column(
        Integer,
        ForeignKey("approval_workflow_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_id = Column(Integer, ForeignKey("approval_workflow_steps.id", ondelete="CASCADE"), nullable=False)
    approver_email = Column(String(255), nullable=False)
    
    # Decision
    status = Column(String(20), nullable=False, default="pending")
    decision_at = Column(DateTime, nullable=True)
    decision_comment = Column(Text, nullable=True)
    
    # Reminders
    reminder_sent_at = Column(DateTime, nullable=True)
    reminder_count = Column(Integer, nullable=False, default=0)
    
    created_at = Column(DateTime, default=_utcnow)
    
    instance = relationship("WorkflowInstanceModel", back_populates="requests")
    step = relationship("WorkflowStepModel")
    
    def __repr__(self) -> str:
        return f"<ApprovalRequest {self.approver_email} [{self.status}]>"


class ApprovalHistoryModel(Base):
    """
    Records every workflow action.
    
    Rows are only ever inserted; they are never updated or deleted by the
    application.
    """
    __tablename__ = "approval_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    workflow_instance_id = Column(
        Integer,
        ForeignKey("approval_workflow_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action = Column(String(50), nullable=False)  # initiated, approved, auto_approved, rejected, cancelled
    actor_email = Column(String(255), nullable=False)
    step_id = Column(Integer, ForeignKey("approval_workflow_steps.id", ondelete="SET NULL"), nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    
    instance = relationship("WorkflowInstanceModel", back_populates="history")
    
    def __repr__(self) -> str:
        return f"<ApprovalHistory {self.action} by {self.actor_email}>"
