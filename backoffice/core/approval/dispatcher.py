"""Materializes approval requests when the engine decides a step is live."""

import logging
from typing import Iterable, List, Optional

from backoffice.core.clock import Clock, SystemClock

from .resolver import ApproverResolver
from .store import InstanceStore
from .types import ApprovalRequest, WorkflowInstance, WorkflowStep

logger = logging.getLogger(__name__)


class RequestDispatcher:
    """Creates one pending request per resolved approver of each live step."""

    def __init__(
        self,
        store: InstanceStore,
        resolver: Optional[ApproverResolver] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.resolver = resolver or ApproverResolver()
        self.clock = clock or SystemClock()

    def activate(self, instance: WorkflowInstance, steps: Iterable[WorkflowStep]) -> List[ApprovalRequest]:
        created = []
        now = self.clock.now()
        for step in steps:
            for approver_email in self.resolver.resolve(step):
                request = self.store.add_request(
                    ApprovalRequest(
                        workflow_instance_id=instance.id,
                        step_id=step.id,
                        approver_email=approver_email,
                        created_at=now,
                    )
                )
                logger.info(
                    "Approval request %s created for %s (instance %s, step %s)",
                    request.id, approver_email, instance.id, step.step_order,
                )
                created.append(request)
        return created
