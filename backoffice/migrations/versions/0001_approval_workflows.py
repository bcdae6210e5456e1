"""Add approval workflow tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Tables added:
- approval_workflow_definitions: Reusable workflow templates per entity type
- approval_workflow_steps: Ordered approver positions of a definition
- approval_workflow_instances: Workflow runs for individual entities
- approval_requests: Decisions asked of individual approvers
- approval_history: Append-only record of workflow actions
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create approval workflow tables."""
    
    # --- approval_workflow_definitions ---
    op.create_table(
        "approval_workflow_definitions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("workflow_type", sa.String(50), nullable=False, server_default="sequential"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_approval_workflow_definitions"),
    )
    op.create_index(
        "ix_approval_workflow_definitions_entity_type", "approval_workflow_definitions", ["entity_type"]
    )
    op.create_index(
        "ix_approval_workflow_definitions_is_active", "approval_workflow_definitions", ["is_active"]
    )
    
    # --- approval_workflow_steps ---
    op.create_table(
        "approval_workflow_steps",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workflow_definition_id", sa.Integer(), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("approver_type", sa.String(20), nullable=False),
        sa.Column("approver_value", sa.String(255), nullable=False),
        sa.Column("is_optional", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_approve_after_hours", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_approval_workflow_steps"),
        sa.ForeignKeyConstraint(
            ["workflow_definition_id"], ["approval_workflow_definitions.id"],
            name="fk_approval_workflow_steps_definition_id", ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "workflow_definition_id", "step_order", name="uq_approval_steps_definition_order"
        ),
    )
    op.create_index(
        "ix_approval_workflow_steps_workflow_definition_id",
        "approval_workflow_steps",
        ["workflow_definition_id"],
    )
    
    # --- approval_workflow_instances ---
    op.create_table(
        "approval_workflow_instances",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workflow_definition_id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("current_step", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("initiated_by", sa.String(255), nullable=False),
        sa.Column("initiated_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_approval_workflow_instances"),
        sa.ForeignKeyConstraint(
            ["workflow_definition_id"], ["approval_workflow_definitions.id"],
            name="fk_approval_workflow_instances_definition_id", ondelete="CASCADE",
        ),
    )
    op.create_index(
        "idx_approval_instances_entity", "approval_workflow_instances", ["entity_type", "entity_id"]
    )
    op.create_index("ix_approval_workflow_instances_status", "approval_workflow_instances", ["status"])
    
    # --- approval_requests ---
    op.create_table(
        "approval_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workflow_instance_id", sa.Integer(), nullable=False),
        sa.Column("step_id", sa.Integer(), nullable=False),
        sa.Column("approver_email", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("decision_at", sa.DateTime(), nullable=True),
        sa.Column("decision_comment", sa.Text(), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(), nullable=True),
        sa.Column("reminder_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_approval_requests"),
        sa.ForeignKeyConstraint(
            ["workflow_instance_id"], ["approval_workflow_instances.id"],
            name="fk_approval_requests_instance_id", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["step_id"], ["approval_workflow_steps.id"],
            name="fk_approval_requests_step_id", ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_approval_requests_workflow_instance_id", "approval_requests", ["workflow_instance_id"]
    )
    op.create_index(
        "idx_approval_requests_approver", "approval_requests", ["approver_email", "status"]
    )
    
    # --- approval_history ---
    op.create_table(
        "approval_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workflow_instance_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_email", sa.String(255), nullable=False),
        sa.Column("step_id", sa.Integer(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_approval_history"),
        sa.ForeignKeyConstraint(
            ["workflow_instance_id"], ["approval_workflow_instances.id"],
            name="fk_approval_history_instance_id", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["step_id"], ["approval_workflow_steps.id"],
            name="fk_approval_history_step_id", ondelete="SET NULL",
        ),
    )
    op.create_index(
        "ix_approval_history_workflow_instance_id", "approval_history", ["workflow_instance_id"]
    )


def downgrade() -> None:
    """Drop approval workflow tables."""
    op.drop_index("ix_approval_history_workflow_instance_id", table_name="approval_history")
    op.drop_table("approval_history")
    
    op.drop_index("idx_approval_requests_approver", table_name="approval_requests")
    op.drop_index("ix_approval_requests_workflow_instance_id", table_name="approval_requests")
    op.drop_table("approval_requests")
    
    op.drop_index("ix_approval_workflow_instances_status", table_name="approval_workflow_instances")
    op.drop_index("idx_approval_instances_entity", table_name="approval_workflow_instances")
    op.drop_table("approval_workflow_instances")
    
    op.drop_index(
        "ix_approval_workflow_steps_workflow_definition_id", table_name="approval_workflow_steps"
    )
    op.drop_table("approval_workflow_steps")
    
    op.drop_index(
        "ix_approval_workflow_definitions_is_active", table_name="approval_workflow_definitions"
    )
    op.drop_index(
        "ix_approval_workflow_definitions_entity_type", table_name="approval_workflow_definitions"
    )
    op.drop_table("approval_workflow_definitions")
