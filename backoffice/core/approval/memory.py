"""In-memory workflow stores.

Thread-safe stand-ins for the SQL stores, used by tests and by callers that
embed the engine without a database. A re-entrant lock serializes units of
work; a failed unit of work restores the snapshot taken when it began.
"""

import copy
import itertools
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional

from .errors import InvalidStepConfiguration
from .states import ACTIVE_WORKFLOW_STATES, RequestStatus, WorkflowStatus, can_transition_request
from .types import (
    ApprovalHistoryEntry,
    ApprovalRequest,
    WorkflowDefinition,
    WorkflowInstance,
    WorkflowStep,
)


class InMemoryDefinitionStore:
    """Definition store backed by dictionaries."""

    def __init__(self):
        self._lock = threading.RLock()
        self._definitions: Dict[int, WorkflowDefinition] = {}
        self._steps: Dict[int, WorkflowStep] = {}
        self._definition_ids = itertools.count(1)
        self._step_ids = itertools.count(1)

    def add_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        with self._lock:
            if definition.is_default:
                self._clear_default(definition.entity_type)
            stored = replace(definition, id=next(self._definition_ids))
            self._definitions[stored.id] = stored
            return replace(stored)

    def get_definition(self, definition_id: int) -> Optional[WorkflowDefinition]:
        with self._lock:
            definition = self._definitions.get(definition_id)
            return replace(definition) if definition else None

    def get_default_definition(self, entity_type: str) -> Optional[WorkflowDefinition]:
        with self._lock:
            for definition in self._definitions.values():
                if definition.entity_type == entity_type and definition.is_default and definition.is_active:
                    return replace(definition)
            return None

    def list_definitions(self, entity_type: Optional[str] = None) -> List[WorkflowDefinition]:
        with self._lock:
            definitions = [
                replace(d) for d in self._definitions.values()
                if entity_type is None or d.entity_type == entity_type
            ]
        definitions.sort(key=lambda d: (d.entity_type, not d.is_default, d.name))
        return definitions

    def update_definition(self, definition_id: int, **changes) -> Optional[WorkflowDefinition]:
        with self._lock:
            definition = self._definitions.get(definition_id)
            if definition is None:
                return None
            if changes.get("is_default"):
                self._clear_default(definition.entity_type)
            updated = replace(definition, **changes)
            self._definitions[definition_id] = updated
            return replace(updated)

    def add_step(self, step: WorkflowStep) -> WorkflowStep:
        with self._lock:
            for existing in self._steps.values():
                if (
                    existing.workflow_definition_id == step.workflow_definition_id
                    and existing.step_order == step.step_order
                ):
                    raise InvalidStepConfiguration(
                        f"Step order {step.step_order} already exists in "
                        f"workflow definition {step.workflow_definition_id}"
                    )
            stored = replace(step, id=next(self._step_ids))
            self._steps[stored.id] = stored
            return replace(stored)

    def get_step(self, step_id: int) -> Optional[WorkflowStep]:
        with self._lock:
            step = self._steps.get(step_id)
            return replace(step) if step else None

    def list_steps(self, definition_id: int) -> List[WorkflowStep]:
        with self._lock:
            steps = [replace(s) for s in self._steps.values() if s.workflow_definition_id == definition_id]
        return sorted(steps, key=lambda s: s.step_order)

    def _clear_default(self, entity_type: str) -> None:
        for definition_id, definition in self._definitions.items():
            if definition.entity_type == entity_type and definition.is_default:
                self._definitions[definition_id] = replace(definition, is_default=False)


class InMemoryInstanceStore:
    """Instance store backed by dictionaries."""

    def __init__(self):
        self._lock = threading.RLock()
        self._instances: Dict[int, WorkflowInstance] = {}
        self._requests: Dict[int, ApprovalRequest] = {}
        self._history: Dict[int, ApprovalHistoryEntry] = {}
        self._ids = {
            "instance": itertools.count(1),
            "request": itertools.count(1),
            "history": itertools.count(1),
        }

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            snapshot = copy.deepcopy((self._instances, self._requests, self._history))
            try:
                yield
            except BaseException:
                self._instances, self._requests, self._history = snapshot
                raise

    def lock_instance(self, instance_id: int) -> Optional[WorkflowInstance]:
        # The unit-of-work lock already serializes every instance.
        return self.get_instance(instance_id)

    def add_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        with self._lock:
            stored = replace(instance, id=next(self._ids["instance"]))
            self._instances[stored.id] = stored
            return replace(stored)

    def get_instance(self, instance_id: int) -> Optional[WorkflowInstance]:
        with self._lock:
            instance = self._instances.get(instance_id)
            return replace(instance) if instance else None

    def get_latest_instance(self, entity_type: str, entity_id: int) -> Optional[WorkflowInstance]:
        with self._lock:
            matches = [
                i for i in self._instances.values()
                if i.entity_type == entity_type and i.entity_id == entity_id
            ]
            if not matches:
                return None
            return replace(max(matches, key=lambda i: i.id))

    def list_active_instances(self) -> List[WorkflowInstance]:
        with self._lock:
            active = [
                replace(i) for i in self._instances.values()
                if WorkflowStatus(i.status) in ACTIVE_WORKFLOW_STATES
            ]
        return sorted(active, key=lambda i: (i.initiated_at, i.id), reverse=True)

    def update_instance(self, instance_id: int, **changes) -> WorkflowInstance:
        with self._lock:
            updated = replace(self._instances[instance_id], **changes)
            self._instances[instance_id] = updated
            return replace(updated)

    def add_request(self, request: ApprovalRequest) -> ApprovalRequest:
        with self._lock:
            stored = replace(request, id=next(self._ids["request"]))
            self._requests[stored.id] = stored
            return replace(stored)

    def get_request(self, request_id: int) -> Optional[ApprovalRequest]:
        with self._lock:
            request = self._requests.get(request_id)
            return replace(request) if request else None

    def list_requests(self, instance_id: int) -> List[ApprovalRequest]:
        with self._lock:
            return [replace(r) for r in self._requests.values() if r.workflow_instance_id == instance_id]

    def list_pending_requests(
        self,
        approver_email: Optional[str] = None,
        *,
        approver_prefix: Optional[str] = None,
    ) -> List[ApprovalRequest]:
        with self._lock:
            pending = []
            for request in self._requests.values():
                if not request.is_pending:
                    continue
                if approver_email is not None and request.approver_email != approver_email:
                    continue
                if approver_prefix is not None and not request.approver_email.startswith(approver_prefix):
                    continue
                instance = self._instances.get(request.workflow_instance_id)
                if instance is None or instance.status != WorkflowStatus.IN_PROGRESS.value:
                    continue
                pending.append(replace(request))
        return sorted(pending, key=lambda r: (r.created_at, r.id))

    def decide_request(
        self,
        request_id: int,
        status: str,
        *,
        decided_at: datetime,
        comment: Optional[str] = None,
    ) -> bool:
        with self._lock:
            request = self._requests.get(request_id)
            if request is None or not can_transition_request(request.status, status):
                return False
            self._requests[request_id] = replace(
                request,
                status=RequestStatus(status).value,
                decision_at=decided_at,
                decision_comment=comment,
            )
            return True

    def skip_pending_requests(self, instance_id: int, *, step_ids: Optional[Iterable[int]] = None) -> int:
        wanted = set(step_ids) if step_ids is not None else None
        count = 0
        with self._lock:
            for request_id, request in self._requests.items():
                if request.workflow_instance_id != instance_id or not request.is_pending:
                    continue
                if wanted is not None and request.step_id not in wanted:
                    continue
                self._requests[request_id] = replace(request, status=RequestStatus.SKIPPED.value)
                count += 1
        return count

    def record_reminder(self, request_id: int, *, sent_at: datetime, expected_count: int) -> bool:
        with self._lock:
            request = self._requests.get(request_id)
            if request is None or not request.is_pending or request.reminder_count != expected_count:
                return False
            self._requests[request_id] = replace(
                request,
                reminder_sent_at=sent_at,
                reminder_count=request.reminder_count + 1,
            )
            return True

    def append_history(self, entry: ApprovalHistoryEntry) -> ApprovalHistoryEntry:
        with self._lock:
            stored = replace(entry, id=next(self._ids["history"]))
            self._history[stored.id] = stored
            return replace(stored)

    def list_history(self, instance_id: int) -> List[ApprovalHistoryEntry]:
        with self._lock:
            entries = [replace(e) for e in self._history.values() if e.workflow_instance_id == instance_id]
        return sorted(entries, key=lambda e: (e.created_at, e.id), reverse=True)
