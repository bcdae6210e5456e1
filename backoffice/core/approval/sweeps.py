"""Scheduled sweeps over pending approval requests.

Both sweeps are idempotent: running them twice, or concurrently, approves or
reminds each request at most once because every write is a conditional
update on the request row.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from .engine import WorkflowEngine
from .errors import AlreadyProcessed, WorkflowError
from .events import WorkflowEventType
from .types import PendingApproval, WorkflowStep

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    processed: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: List[Dict] = field(default_factory=list)


class AutoApprovalSweeper:
    """Approves requests whose step's auto_approve_after_hours has elapsed."""

    def __init__(self, engine: WorkflowEngine, system_actor: str):
        self.engine = engine
        self.system_actor = system_actor

    def run(self) -> SweepResult:
        result = SweepResult()
        now = self.engine.clock.now()
        steps: Dict[int, Optional[WorkflowStep]] = {}

        for request in self.engine.list_open_requests():
            if request.step_id not in steps:
                steps[request.step_id] = self.engine.definitions.get_step(request.step_id)
            step = steps[request.step_id]
            if step is None or not step.auto_approve_after_hours:
                continue
            if request.created_at + timedelta(hours=step.auto_approve_after_hours) > now:
                continue

            try:
                self.engine.approve(
                    request.id,
                    self.system_actor,
                    f"Auto-approved after {step.auto_approve_after_hours} hours without response",
                    auto=True,
                )
                result.processed.append(request.id)
            except AlreadyProcessed:
                # Decided by a person or another sweep in the meantime
                result.skipped.append(request.id)
            except WorkflowError as e:
                logger.exception("Auto-approval failed for request %s", request.id)
                result.failed.append({"id": request.id, "error": str(e)})

        if result.processed:
            logger.info("Auto-approved %s overdue requests", len(result.processed))
        return result


class ReminderSweeper:
    """
    Sends escalating reminders for pending requests.

    ``intervals_hours`` is measured from request creation: with
    ``[24, 72, 168]`` the first reminder goes out after one day, the second
    after three and the last after seven. No reminders follow the last one.
    """

    def __init__(self, engine: WorkflowEngine, intervals_hours: Sequence[int]):
        self.engine = engine
        self.intervals_hours = sorted(intervals_hours)

    def is_due(self, request: PendingApproval) -> bool:
        if request.reminder_count >= len(self.intervals_hours):
            return False
        due_at = request.created_at + timedelta(hours=self.intervals_hours[request.reminder_count])
        return self.engine.clock.now() >= due_at

    def run(self) -> SweepResult:
        result = SweepResult()
        now = self.engine.clock.now()

        for request in self.engine.list_open_requests():
            if not self.is_due(request):
                continue

            with self.engine.instances.atomic():
                sent = self.engine.instances.record_reminder(
                    request.id, sent_at=now, expected_count=request.reminder_count,
                )
            if not sent:
                result.skipped.append(request.id)
                continue

            instance = self.engine.get_instance(request.workflow_instance_id)
            self.engine.publish([self.engine.build_event(WorkflowEventType.APPROVAL_REMINDER, instance, request)])
            result.processed.append(request.id)

        if result.processed:
            logger.info("Sent %s approval reminders", len(result.processed))
        return result
