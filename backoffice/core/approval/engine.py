"""Approval workflow engine.

Drives a business entity through the approver chain of a workflow
definition. Every mutating operation is one unit of work on the instance
store:

- the pending -> decided change of a request is a conditional update, and
  only the caller whose update matched may advance the workflow;
- advancement re-reads the instance's requests while holding the
  per-instance lock, so concurrent approvals on sibling requests cannot both
  conclude that the workflow is incomplete.

Observers are notified after the unit of work succeeds. When the engine runs
inside a transaction owned by its caller (``defer_events``), events are held
until the caller commits and calls ``flush_events``.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from backoffice.core.clock import Clock, SystemClock

from .dispatcher import RequestDispatcher
from .errors import (
    AlreadyProcessed,
    DefinitionNotFound,
    InstanceNotActive,
    InstanceNotFound,
    NoStepsConfigured,
    RequestNotFound,
    WorkflowConfigurationError,
    WorkflowError,
)
from .events import WorkflowEvent, WorkflowEventType, WorkflowObserver
from .history import HistoryLogger
from .machine import Outcome, check_transition, evaluate_advancement
from .registry import DefinitionRegistry
from .resolver import ROLE_PREFIX, ApproverResolver
from .states import (
    EntityType,
    HistoryAction,
    RequestStatus,
    WorkflowStatus,
    WorkflowType,
    parse_entity_type,
    parse_workflow_type,
)
from .store import DefinitionStore, InstanceStore
from .types import (
    ActiveWorkflow,
    ApprovalHistoryEntry,
    ApprovalRequest,
    InstanceDetail,
    PendingApproval,
    WorkflowDefinition,
    WorkflowInstance,
)

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """
    State machine for approval workflows.

    Handles:
    - Starting workflow instances and creating their initial requests
    - Approve / reject decisions on individual requests
    - Advancement according to the definition's workflow type
    - Cancellation
    - Read models for dashboards and approver inboxes
    """

    def __init__(
        self,
        definitions: DefinitionStore,
        instances: InstanceStore,
        resolver: Optional[ApproverResolver] = None,
        *,
        clock: Optional[Clock] = None,
        observers: Optional[Iterable[WorkflowObserver]] = None,
        defer_events: bool = False,
    ):
        """
        Initialize the engine.

        Args:
            definitions: Store holding workflow definitions and steps
            instances: Store holding instances, requests and history
            resolver: Approver resolver (role lookups); defaults to one
                without role membership, which yields role placeholders
            clock: Time source
            observers: Receivers of workflow events
            defer_events: Hold events until ``flush_events`` instead of
                delivering them when a unit of work ends
        """
        self.definitions = definitions
        self.instances = instances
        self.clock = clock or SystemClock()
        self.resolver = resolver or ApproverResolver()
        self.registry = DefinitionRegistry(definitions, self.clock)
        self.history = HistoryLogger(instances, self.clock)
        self.dispatcher = RequestDispatcher(instances, self.resolver, self.clock)
        self._observers: List[WorkflowObserver] = list(observers or [])
        self.defer_events = defer_events
        self._outbox: List[WorkflowEvent] = []

    def add_observer(self, observer: WorkflowObserver) -> None:
        self._observers.append(observer)

    # ------------------------------------------------------------------
    # Workflow lifecycle
    # ------------------------------------------------------------------

    def start_workflow(
        self,
        entity_type,
        entity_id: int,
        initiated_by: str,
        definition_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> WorkflowInstance:
        """
        Start an approval workflow for an entity.

        Args:
            entity_type: Type of the entity being approved
            entity_id: ID of the entity
            initiated_by: Email of the initiating user
            definition_id: Explicit definition; the entity type's default otherwise
            notes: Optional notes stored on the instance

        Returns:
            The created instance (in progress)

        Raises:
            DefinitionNotFound: If no definition resolves
            NoStepsConfigured: If the definition has no steps
            InvalidWorkflowType: If the definition's workflow type is unknown
        """
        entity_type = parse_entity_type(entity_type)
        events: List[WorkflowEvent] = []

        with self.instances.atomic():
            definition = self._resolve_definition(entity_type, definition_id)
            workflow_type = parse_workflow_type(definition.workflow_type)
            steps = self.definitions.list_steps(definition.id)
            if not steps:
                raise NoStepsConfigured(definition.id)

            instance = self.instances.add_instance(
                WorkflowInstance(
                    workflow_definition_id=definition.id,
                    entity_type=entity_type.value,
                    entity_id=entity_id,
                    initiated_by=initiated_by,
                    status=WorkflowStatus.IN_PROGRESS.value,
                    current_step=steps[0].step_order,
                    initiated_at=self.clock.now(),
                    notes=notes,
                )
            )
            self.history.record(instance.id, HistoryAction.INITIATED, initiated_by, comment=notes)

            # Sequential workflows only notify the first approver
            live_steps = steps[:1] if workflow_type is WorkflowType.SEQUENTIAL else steps
            for request in self.dispatcher.activate(instance, live_steps):
                events.append(self.build_event(WorkflowEventType.APPROVAL_PENDING, instance, request))

        logger.info(
            "Started %s workflow %s for %s %s (definition %s) by %s",
            workflow_type.value, instance.id, entity_type.value, entity_id, definition.id, initiated_by,
        )
        self.publish(events)
        return instance

    def approve(
        self,
        request_id: int,
        approver_email: str,
        comment: Optional[str] = None,
        *,
        auto: bool = False,
    ) -> WorkflowInstance:
        """
        Approve a pending request and advance its workflow.

        Args:
            request_id: ID of the approval request
            approver_email: Email of the deciding approver
            comment: Optional decision comment
            auto: Recorded as ``auto_approved`` (scheduled auto-approval)

        Returns:
            The instance after advancement, possibly terminal

        Raises:
            RequestNotFound: If the request does not exist
            AlreadyProcessed: If the request or its workflow was already decided
        """
        action = HistoryAction.AUTO_APPROVED if auto else HistoryAction.APPROVED

        with self.instances.atomic():
            request, instance = self._claim(request_id, RequestStatus.APPROVED, comment)
            self.history.record(instance.id, action, approver_email, step_id=request.step_id, comment=comment)
            instance, events = self._advance(instance)

        logger.info(
            "Request %s %s by %s; workflow %s is %s",
            request_id, action.value, approver_email, instance.id, instance.status,
        )
        self.publish(events)
        return instance

    def reject(self, request_id: int, approver_email: str, reason: str) -> WorkflowInstance:
        """
        Reject a pending request.

        Rejection at any step ends the whole workflow, whatever its type.
        Every other pending request of the instance is skipped.

        Raises:
            RequestNotFound: If the request does not exist
            AlreadyProcessed: If the request or its workflow was already decided
        """
        with self.instances.atomic():
            request, instance = self._claim(request_id, RequestStatus.REJECTED, reason)
            instance = self._finish(instance, WorkflowStatus.REJECTED)
            self.history.record(
                instance.id, HistoryAction.REJECTED, approver_email,
                step_id=request.step_id, comment=reason,
            )

        logger.info("Request %s rejected by %s; workflow %s rejected", request_id, approver_email, instance.id)
        self.publish([self.build_event(WorkflowEventType.WORKFLOW_COMPLETED, instance, request)])
        return instance

    def cancel_workflow(
        self,
        instance_id: int,
        cancelled_by: str,
        reason: Optional[str] = None,
    ) -> WorkflowInstance:
        """
        Cancel an in-flight workflow, skipping its pending requests.

        Raises:
            InstanceNotFound: If the instance does not exist
            InstanceNotActive: If the instance is already terminal
        """
        with self.instances.atomic():
            instance = self.instances.lock_instance(instance_id)
            if instance is None:
                raise InstanceNotFound(instance_id)
            if instance.is_terminal:
                raise InstanceNotActive(instance_id, instance.status)

            changes = {"notes": reason} if reason else {}
            instance = self._finish(instance, WorkflowStatus.CANCELLED, **changes)
            self.history.record(instance.id, HistoryAction.CANCELLED, cancelled_by, comment=reason)

        logger.info("Workflow %s cancelled by %s", instance_id, cancelled_by)
        self.publish([self.build_event(WorkflowEventType.WORKFLOW_COMPLETED, instance)])
        return instance

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    def batch_approve(
        self,
        request_ids: Sequence[int],
        approver_email: str,
        comment: Optional[str] = None,
    ) -> Dict[str, list]:
        """
        Approve multiple requests; each one is its own unit of work.

        Returns:
            Summary of results
        """
        results: Dict[str, list] = {"approved": [], "failed": []}

        for request_id in request_ids:
            try:
                self.approve(request_id, approver_email, comment)
                results["approved"].append(request_id)
            except WorkflowError as e:
                results["failed"].append({"id": request_id, "error": str(e)})

        return results

    def batch_reject(
        self,
        request_ids: Sequence[int],
        approver_email: str,
        reason: str,
    ) -> Dict[str, list]:
        """
        Reject multiple requests; each one is its own unit of work.

        Returns:
            Summary of results
        """
        results: Dict[str, list] = {"rejected": [], "failed": []}

        for request_id in request_ids:
            try:
                self.reject(request_id, approver_email, reason)
                results["rejected"].append(request_id)
            except WorkflowError as e:
                results["failed"].append({"id": request_id, "error": str(e)})

        return results

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_instance(self, instance_id: int) -> WorkflowInstance:
        instance = self.instances.get_instance(instance_id)
        if instance is None:
            raise InstanceNotFound(instance_id)
        return instance

    def get_instance_detail(self, instance_id: int) -> InstanceDetail:
        return self._detail(self.get_instance(instance_id))

    def get_entity_workflow(self, entity_type, entity_id: int) -> Optional[WorkflowInstance]:
        """Most recent workflow instance for an entity, if any."""
        entity_type = parse_entity_type(entity_type)
        return self.instances.get_latest_instance(entity_type.value, entity_id)

    def get_entity_workflow_detail(self, entity_type, entity_id: int) -> Optional[InstanceDetail]:
        instance = self.get_entity_workflow(entity_type, entity_id)
        return self._detail(instance) if instance else None

    def get_request(self, request_id: int) -> ApprovalRequest:
        request = self.instances.get_request(request_id)
        if request is None:
            raise RequestNotFound(request_id)
        return request

    def get_approval_requests(self, instance_id: int) -> List[ApprovalRequest]:
        return self.instances.list_requests(instance_id)

    def get_approval_history(self, instance_id: int) -> List[ApprovalHistoryEntry]:
        return self.history.timeline(instance_id)

    def get_pending_approvals_for_user(self, email: str) -> List[PendingApproval]:
        """
        Pending requests ``email`` may decide on in-progress workflows, oldest first.

        Besides requests addressed to ``email`` this includes role placeholder
        requests of roles that ``email`` holds by now.
        """
        requests = self.instances.list_pending_requests(email)
        requests.extend(
            r for r in self.instances.list_pending_requests(approver_prefix=ROLE_PREFIX)
            if r.approver_email != email and self.resolver.is_addressed_to(r.approver_email, email)
        )
        requests.sort(key=lambda r: (r.created_at, r.id))
        return self._enrich(requests)

    def list_open_requests(self) -> List[PendingApproval]:
        """Every pending request on an in-progress workflow (used by scheduled sweeps)."""
        return self._enrich(self.instances.list_pending_requests())

    def list_active_workflows(self) -> List[ActiveWorkflow]:
        """In-flight instances with their definition's name and type, newest first."""
        definitions: Dict[int, Optional[WorkflowDefinition]] = {}
        active = []
        for instance in self.instances.list_active_instances():
            definition = self._cached_definition(definitions, instance.workflow_definition_id)
            active.append(
                ActiveWorkflow(
                    **vars(instance),
                    workflow_name=definition.name if definition else None,
                    workflow_type=definition.workflow_type if definition else None,
                )
            )
        return active

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def publish(self, events: Iterable[WorkflowEvent]) -> None:
        """Deliver events to observers, or queue them when delivery is deferred."""
        if self.defer_events:
            self._outbox.extend(events)
            return
        self._deliver(events)

    def flush_events(self) -> int:
        """Deliver queued events once the caller's transaction has committed."""
        events, self._outbox = self._outbox, []
        self._deliver(events)
        return len(events)

    def discard_events(self) -> None:
        """Drop queued events after the caller rolled back."""
        if self._outbox:
            logger.debug("Discarding %s undelivered workflow events", len(self._outbox))
        self._outbox = []

    def _deliver(self, events: Iterable[WorkflowEvent]) -> None:
        # Observer failures never undo a transition
        for event in events:
            for observer in self._observers:
                try:
                    observer.notify(event)
                except Exception:
                    logger.exception(
                        "Observer %r failed for %s on workflow %s",
                        observer, event.event_type.value, event.instance.id,
                    )

    def build_event(
        self,
        event_type: WorkflowEventType,
        instance: WorkflowInstance,
        request: Optional[ApprovalRequest] = None,
    ) -> WorkflowEvent:
        return WorkflowEvent(event_type=event_type, instance=instance, request=request, occurred_at=self.clock.now())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve_definition(self, entity_type: EntityType, definition_id: Optional[int]) -> WorkflowDefinition:
        if definition_id is None:
            return self.registry.get_default(entity_type)

        definition = self.registry.get(definition_id)
        if definition.entity_type != entity_type.value:
            raise DefinitionNotFound(entity_type=entity_type.value, definition_id=definition_id)
        return definition

    def _claim(
        self,
        request_id: int,
        status: RequestStatus,
        comment: Optional[str],
    ) -> Tuple[ApprovalRequest, WorkflowInstance]:
        """Move a pending request to ``status`` and return it with its locked instance."""
        request = self.instances.get_request(request_id)
        if request is None:
            raise RequestNotFound(request_id)
        if not request.is_pending:
            raise AlreadyProcessed(request_id, request.status)

        instance = self.instances.lock_instance(request.workflow_instance_id)
        if instance is None:
            raise WorkflowConfigurationError(
                f"Approval request {request_id} belongs to missing workflow instance "
                f"{request.workflow_instance_id}"
            )
        if instance.is_terminal:
            raise AlreadyProcessed(request_id, instance.status)

        if not self.instances.decide_request(request_id, status.value, decided_at=self.clock.now(), comment=comment):
            current = self.instances.get_request(request_id)
            logger.warning("Lost race deciding approval request %s", request_id)
            raise AlreadyProcessed(request_id, current.status if current else None)

        return self.instances.get_request(request_id), instance

    def _advance(self, instance: WorkflowInstance) -> Tuple[WorkflowInstance, List[WorkflowEvent]]:
        """Re-derive the instance's state from its requests after an approval."""
        definition = self.definitions.get_definition(instance.workflow_definition_id)
        if definition is None:
            raise WorkflowConfigurationError(
                f"Workflow instance {instance.id} references missing definition "
                f"{instance.workflow_definition_id}"
            )
        steps = self.definitions.list_steps(definition.id)
        requests = self.instances.list_requests(instance.id)
        decision = evaluate_advancement(definition.workflow_type, instance.current_step, steps, requests)

        if decision.outcome is Outcome.COMPLETE:
            instance = self._finish(instance, WorkflowStatus.APPROVED)
            logger.info("Workflow %s approved", instance.id)
            return instance, [self.build_event(WorkflowEventType.WORKFLOW_COMPLETED, instance)]

        if decision.settled_step_ids:
            self.instances.skip_pending_requests(instance.id, step_ids=decision.settled_step_ids)

        if decision.outcome is Outcome.ADVANCE:
            next_step = decision.next_step
            instance = self.instances.update_instance(instance.id, current_step=next_step.step_order)
            logger.info("Workflow %s advanced to step %s", instance.id, next_step.step_order)
            return instance, [
                self.build_event(WorkflowEventType.APPROVAL_PENDING, instance, request)
                for request in self.dispatcher.activate(instance, [next_step])
            ]

        return instance, []

    def _finish(self, instance: WorkflowInstance, status: WorkflowStatus, **changes) -> WorkflowInstance:
        """Move an instance to a terminal status, skipping whatever is still pending."""
        check_transition(instance, status)
        skipped = self.instances.skip_pending_requests(instance.id)
        if skipped:
            logger.debug("Skipped %s pending requests of workflow %s", skipped, instance.id)
        return self.instances.update_instance(
            instance.id,
            status=status.value,
            completed_at=self.clock.now(),
            **changes,
        )

    def _detail(self, instance: WorkflowInstance) -> InstanceDetail:
        return InstanceDetail(
            instance=instance,
            requests=self.get_approval_requests(instance.id),
            history=self.get_approval_history(instance.id),
        )

    def _cached_definition(
        self,
        cache: Dict[int, Optional[WorkflowDefinition]],
        definition_id: int,
    ) -> Optional[WorkflowDefinition]:
        if definition_id not in cache:
            cache[definition_id] = self.definitions.get_definition(definition_id)
        return cache[definition_id]

    def _enrich(self, requests: List[ApprovalRequest]) -> List[PendingApproval]:
        instances: Dict[int, Optional[WorkflowInstance]] = {}
        definitions: Dict[int, Optional[WorkflowDefinition]] = {}
        enriched = []
        for request in requests:
            if request.workflow_instance_id not in instances:
                instances[request.workflow_instance_id] = self.instances.get_instance(request.workflow_instance_id)
            instance = instances[request.workflow_instance_id]
            definition = (
                self._cached_definition(definitions, instance.workflow_definition_id) if instance else None
            )
            enriched.append(
                PendingApproval(
                    **vars(request),
                    entity_type=instance.entity_type if instance else None,
                    entity_id=instance.entity_id if instance else None,
                    workflow_name=definition.name if definition else None,
                )
            )
        return enriched
