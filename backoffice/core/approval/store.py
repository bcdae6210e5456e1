"""Persistence contracts required by the workflow engine.

Two backends implement these protocols: the SQLAlchemy stores in
``backoffice.db.stores`` and the in-memory stores in
``backoffice.core.approval.memory``.
"""

from datetime import datetime
from typing import ContextManager, Iterable, List, Optional, Protocol

from .types import (
    ApprovalHistoryEntry,
    ApprovalRequest,
    WorkflowDefinition,
    WorkflowInstance,
    WorkflowStep,
)


class DefinitionStore(Protocol):
    """Workflow templates and their ordered steps. Pure data access."""

    def add_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Insert a definition.

        When ``definition.is_default`` is set, the default flag is cleared on
        every other definition of the same entity type in the same write.
        """
        ...

    def get_definition(self, definition_id: int) -> Optional[WorkflowDefinition]: ...

    def get_default_definition(self, entity_type: str) -> Optional[WorkflowDefinition]:
        """Return the active definition flagged as default for an entity type."""
        ...

    def list_definitions(self, entity_type: Optional[str] = None) -> List[WorkflowDefinition]:
        """List definitions, defaults first and then by name."""
        ...

    def update_definition(self, definition_id: int, **changes) -> Optional[WorkflowDefinition]:
        """Apply field changes; promoting to default clears the previous default."""
        ...

    def add_step(self, step: WorkflowStep) -> WorkflowStep:
        """Insert a step. Raises InvalidStepConfiguration on a duplicate order."""
        ...

    def get_step(self, step_id: int) -> Optional[WorkflowStep]: ...

    def list_steps(self, definition_id: int) -> List[WorkflowStep]:
        """List a definition's steps ordered by step_order."""
        ...


class InstanceStore(Protocol):
    """Running and completed workflow state. Pure data access."""

    def atomic(self) -> ContextManager[None]:
        """Unit of work: every write inside commits together or not at all."""
        ...

    def lock_instance(self, instance_id: int) -> Optional[WorkflowInstance]:
        """Load an instance and hold a per-instance lock until the unit of work ends."""
        ...

    def add_instance(self, instance: WorkflowInstance) -> WorkflowInstance: ...

    def get_instance(self, instance_id: int) -> Optional[WorkflowInstance]: ...

    def get_latest_instance(self, entity_type: str, entity_id: int) -> Optional[WorkflowInstance]: ...

    def list_active_instances(self) -> List[WorkflowInstance]:
        """Instances in pending/in_progress, newest first."""
        ...

    def update_instance(self, instance_id: int, **changes) -> WorkflowInstance: ...

    def add_request(self, request: ApprovalRequest) -> ApprovalRequest: ...

    def get_request(self, request_id: int) -> Optional[ApprovalRequest]: ...

    def list_requests(self, instance_id: int) -> List[ApprovalRequest]:
        """Requests of one instance in creation order."""
        ...

    def list_pending_requests(
        self,
        approver_email: Optional[str] = None,
        *,
        approver_prefix: Optional[str] = None,
    ) -> List[ApprovalRequest]:
        """Pending requests whose instance is in progress, oldest first.

        ``approver_email`` matches exactly, ``approver_prefix`` matches the
        start of the approver address (role placeholders).
        """
        ...

    def decide_request(
        self,
        request_id: int,
        status: str,
        *,
        decided_at: datetime,
        comment: Optional[str] = None,
    ) -> bool:
        """Atomically move a request out of ``pending``.

        Returns True only for the single caller whose conditional update
        matched a pending row.
        """
        ...

    def skip_pending_requests(
        self,
        instance_id: int,
        *,
        step_ids: Optional[Iterable[int]] = None,
    ) -> int:
        """Mark pending requests of an instance (optionally only some steps) skipped."""
        ...

    def record_reminder(self, request_id: int, *, sent_at: datetime, expected_count: int) -> bool:
        """Bump the reminder counter if the request is pending and unchanged."""
        ...

    def append_history(self, entry: ApprovalHistoryEntry) -> ApprovalHistoryEntry: ...

    def list_history(self, instance_id: int) -> List[ApprovalHistoryEntry]:
        """History of one instance, newest first."""
        ...
