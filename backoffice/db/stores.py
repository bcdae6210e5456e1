"""SQLAlchemy implementations of the workflow store contracts.

Both stores work inside the caller's Session and never commit: units of work
are savepoints, and the session owner (request handler or worker task)
commits or rolls back.
"""

from contextlib import contextmanager
from dataclasses import fields
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Type, TypeVar

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.core.approval.errors import InvalidStepConfiguration
from backoffice.core.approval.states import (
    ACTIVE_WORKFLOW_STATES,
    RequestStatus,
    WorkflowStatus,
    can_transition_request,
)
from backoffice.core.approval.types import (
    ApprovalHistoryEntry,
    ApprovalRequest,
    WorkflowDefinition,
    WorkflowInstance,
    WorkflowStep,
)
from backoffice.db.models.approval import (
    ApprovalHistoryModel,
    ApprovalRequestModel,
    WorkflowDefinitionModel,
    WorkflowInstanceModel,
    WorkflowStepModel,
)

R = TypeVar("R")


def _to_record(row, record_cls: Type[R]) -> R:
    """Copy the mapped columns of an ORM row into a plain record."""
    return record_cls(**{f.name: getattr(row, f.name) for f in fields(record_cls)})


def _column_values(record) -> dict:
    """Column values of a record for INSERT, leaving unset ones to column defaults."""
    return {
        f.name: getattr(record, f.name)
        for f in fields(record)
        if f.name != "id" and getattr(record, f.name) is not None
    }


class SqlDefinitionStore:
    """Definition store backed by the approval_workflow_* tables."""

    def __init__(self, db: Session):
        self.db = db

    def add_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        row = WorkflowDefinitionModel(**_column_values(definition))
        with self.db.begin_nested():
            if definition.is_default:
                self._clear_default(definition.entity_type)
            self.db.add(row)
            self.db.flush()
        return _to_record(row, WorkflowDefinition)

    def get_definition(self, definition_id: int) -> Optional[WorkflowDefinition]:
        row = self.db.get(WorkflowDefinitionModel, definition_id)
        return _to_record(row, WorkflowDefinition) if row else None

    def get_default_definition(self, entity_type: str) -> Optional[WorkflowDefinition]:
        row = self.db.execute(
            select(WorkflowDefinitionModel)
            .where(
                and_(
                    WorkflowDefinitionModel.entity_type == entity_type,
                    WorkflowDefinitionModel.is_default == True,
                    WorkflowDefinitionModel.is_active == True,
                )
            )
            .order_by(WorkflowDefinitionModel.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        return _to_record(row, WorkflowDefinition) if row else None

    def list_definitions(self, entity_type: Optional[str] = None) -> List[WorkflowDefinition]:
        query = select(WorkflowDefinitionModel)
        if entity_type:
            query = query.where(WorkflowDefinitionModel.entity_type == entity_type)
        query = query.order_by(
            WorkflowDefinitionModel.entity_type,
            WorkflowDefinitionModel.is_default.desc(),
            WorkflowDefinitionModel.name,
        )
        return [_to_record(row, WorkflowDefinition) for row in self.db.execute(query).scalars()]

    def update_definition(self, definition_id: int, **changes) -> Optional[WorkflowDefinition]:
        row = self.db.get(WorkflowDefinitionModel, definition_id)
        if row is None:
            return None
        with self.db.begin_nested():
            if changes.get("is_default"):
                self._clear_default(row.entity_type)
            for key, value in changes.items():
                setattr(row, key, value)
            self.db.flush()
        return _to_record(row, WorkflowDefinition)

    def add_step(self, step: WorkflowStep) -> WorkflowStep:
        row = WorkflowStepModel(**_column_values(step))
        try:
            with self.db.begin_nested():
                self.db.add(row)
                self.db.flush()
        except IntegrityError:
            raise InvalidStepConfiguration(
                f"Step order {step.step_order} already exists in "
                f"workflow definition {step.workflow_definition_id}"
            ) from None
        return _to_record(row, WorkflowStep)

    def get_step(self, step_id: int) -> Optional[WorkflowStep]:
        row = self.db.get(WorkflowStepModel, step_id)
        return _to_record(row, WorkflowStep) if row else None

    def list_steps(self, definition_id: int) -> List[WorkflowStep]:
        rows = self.db.execute(
            select(WorkflowStepModel)
            .where(WorkflowStepModel.workflow_definition_id == definition_id)
            .order_by(WorkflowStepModel.step_order)
        ).scalars()
        return [_to_record(row, WorkflowStep) for row in rows]

    def _clear_default(self, entity_type: str) -> None:
        self.db.execute(
            update(WorkflowDefinitionModel)
            .where(
                and_(
                    WorkflowDefinitionModel.entity_type == entity_type,
                    WorkflowDefinitionModel.is_default == True,
                )
            )
            .values(is_default=False)
        )


class SqlInstanceStore:
    """Instance store backed by the instance, request and history tables."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self.db.begin_nested():
            yield

    def lock_instance(self, instance_id: int) -> Optional[WorkflowInstance]:
        row = self.db.execute(
            select(WorkflowInstanceModel)
            .where(WorkflowInstanceModel.id == instance_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _to_record(row, WorkflowInstance) if row else None

    def add_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        row = WorkflowInstanceModel(**_column_values(instance))
        self.db.add(row)
        self.db.flush()
        return _to_record(row, WorkflowInstance)

    def get_instance(self, instance_id: int) -> Optional[WorkflowInstance]:
        row = self.db.get(WorkflowInstanceModel, instance_id)
        return _to_record(row, WorkflowInstance) if row else None

    def get_latest_instance(self, entity_type: str, entity_id: int) -> Optional[WorkflowInstance]:
        row = self.db.execute(
            select(WorkflowInstanceModel)
            .where(
                and_(
                    WorkflowInstanceModel.entity_type == entity_type,
                    WorkflowInstanceModel.entity_id == entity_id,
                )
            )
            .order_by(WorkflowInstanceModel.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        return _to_record(row, WorkflowInstance) if row else None

    def list_active_instances(self) -> List[WorkflowInstance]:
        rows = self.db.execute(
            select(WorkflowInstanceModel)
            .where(WorkflowInstanceModel.status.in_([s.value for s in ACTIVE_WORKFLOW_STATES]))
            .order_by(WorkflowInstanceModel.initiated_at.desc(), WorkflowInstanceModel.id.desc())
        ).scalars()
        return [_to_record(row, WorkflowInstance) for row in rows]

    def update_instance(self, instance_id: int, **changes) -> WorkflowInstance:
        row = self.db.get(WorkflowInstanceModel, instance_id)
        for key, value in changes.items():
            setattr(row, key, value)
        self.db.flush()
        return _to_record(row, WorkflowInstance)

    def add_request(self, request: ApprovalRequest) -> ApprovalRequest:
        row = ApprovalRequestModel(**_column_values(request))
        self.db.add(row)
        self.db.flush()
        return _to_record(row, ApprovalRequest)

    def get_request(self, request_id: int) -> Optional[ApprovalRequest]:
        row = self.db.get(ApprovalRequestModel, request_id, populate_existing=True)
        return _to_record(row, ApprovalRequest) if row else None

    def list_requests(self, instance_id: int) -> List[ApprovalRequest]:
        rows = self.db.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.workflow_instance_id == instance_id)
            .order_by(ApprovalRequestModel.created_at, ApprovalRequestModel.id)
            .execution_options(populate_existing=True)
        ).scalars()
        return [_to_record(row, ApprovalRequest) for row in rows]

    def list_pending_requests(
        self,
        approver_email: Optional[str] = None,
        *,
        approver_prefix: Optional[str] = None,
    ) -> List[ApprovalRequest]:
        query = (
            select(ApprovalRequestModel)
            .join(WorkflowInstanceModel, ApprovalRequestModel.workflow_instance_id == WorkflowInstanceModel.id)
            .where(
                and_(
                    ApprovalRequestModel.status == RequestStatus.PENDING.value,
                    WorkflowInstanceModel.status == WorkflowStatus.IN_PROGRESS.value,
                )
            )
        )
        if approver_email is not None:
            query = query.where(ApprovalRequestModel.approver_email == approver_email)
        if approver_prefix is not None:
            query = query.where(ApprovalRequestModel.approver_email.startswith(approver_prefix, autoescape=True))
        query = query.order_by(ApprovalRequestModel.created_at.asc(), ApprovalRequestModel.id.asc())
        return [_to_record(row, ApprovalRequest) for row in self.db.execute(query).scalars()]

    def decide_request(
        self,
        request_id: int,
        status: str,
        *,
        decided_at: datetime,
        comment: Optional[str] = None,
    ) -> bool:
        if not can_transition_request(RequestStatus.PENDING.value, status):
            return False
        # Conditional update: only one caller can match the pending row
        result = self.db.execute(
            update(ApprovalRequestModel)
            .where(
                and_(
                    ApprovalRequestModel.id == request_id,
                    ApprovalRequestModel.status == RequestStatus.PENDING.value,
                )
            )
            .values(
                status=RequestStatus(status).value,
                decision_at=decided_at,
                decision_comment=comment,
            )
        )
        return result.rowcount == 1

    def skip_pending_requests(self, instance_id: int, *, step_ids: Optional[Iterable[int]] = None) -> int:
        conditions = [
            ApprovalRequestModel.workflow_instance_id == instance_id,
            ApprovalRequestModel.status == RequestStatus.PENDING.value,
        ]
        if step_ids is not None:
            conditions.append(ApprovalRequestModel.step_id.in_(list(step_ids)))
        result = self.db.execute(
            update(ApprovalRequestModel)
            .where(and_(*conditions))
            .values(status=RequestStatus.SKIPPED.value)
        )
        return result.rowcount

    def record_reminder(self, request_id: int, *, sent_at: datetime, expected_count: int) -> bool:
        result = self.db.execute(
            update(ApprovalRequestModel)
            .where(
                and_(
                    ApprovalRequestModel.id == request_id,
                    ApprovalRequestModel.status == RequestStatus.PENDING.value,
                    ApprovalRequestModel.reminder_count == expected_count,
                )
            )
            .values(reminder_sent_at=sent_at, reminder_count=expected_count + 1)
        )
        return result.rowcount == 1

    def append_history(self, entry: ApprovalHistoryEntry) -> ApprovalHistoryEntry:
        row = ApprovalHistoryModel(**_column_values(entry))
        self.db.add(row)
        self.db.flush()
        return _to_record(row, ApprovalHistoryEntry)

    def list_history(self, instance_id: int) -> List[ApprovalHistoryEntry]:
        rows = self.db.execute(
            select(ApprovalHistoryModel)
            .where(ApprovalHistoryModel.workflow_instance_id == instance_id)
            .order_by(ApprovalHistoryModel.created_at.desc(), ApprovalHistoryModel.id.desc())
        ).scalars()
        return [_to_record(row, ApprovalHistoryEntry) for row in rows]
